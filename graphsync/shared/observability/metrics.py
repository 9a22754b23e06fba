# Prometheus metrics for the graph sync engine

from prometheus_client import Counter, Gauge, Histogram, Info, generate_latest

from ..config import Settings
from .logging import get_logger

logger = get_logger(__name__)

# ===== Queue metrics =====
sync_queue_depth = Gauge(
    "graphsync_queue_depth",
    "Number of sync items waiting in the queue",
)

sync_items_total = Counter(
    "graphsync_items_total",
    "Total sync items that reached a terminal status",
    ["kind", "status"],
)

sync_item_duration_seconds = Histogram(
    "graphsync_item_duration_seconds",
    "Wall time of a sync item from dispatch to terminal status",
    ["kind"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0),
)

# ===== Batch metrics =====
sync_batch_duration_seconds = Histogram(
    "graphsync_batch_duration_seconds",
    "Duration of one bulk statement group inside an item transaction",
    ["kind"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

sync_rows_total = Counter(
    "graphsync_rows_total",
    "Rows written or rejected by the executors",
    ["kind", "outcome"],
)

service_info = Info(
    "graphsync_service",
    "Graph sync service information",
)


def setup_metrics(settings: Settings) -> None:
    """
    Setup Prometheus metrics collection.

    Args:
        settings: Application settings
    """
    service_info.info(
        {
            "version": "0.1.0",
            "environment": settings.env,
            "neo4j_uri": settings.neo4j_uri,
        }
    )
    logger.info("Prometheus metrics enabled")


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus exposition format.

    Returns:
        Metrics as bytes
    """
    return generate_latest()

# Neo4j driver lifecycle for sync items

from typing import Optional

from neo4j import Driver, GraphDatabase

from .config import Settings, get_settings
from .credentials import Credentials
from .observability import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """
    Opens one Neo4j driver per sync item.

    Credentials are supplied per call because they may change between items
    (e.g. the password is entered after a prompt).
    """

    def __init__(self, settings: Optional[Settings] = None, uri: Optional[str] = None):
        self.settings = settings or get_settings()
        self.uri = uri or self.settings.neo4j_uri

    def open_driver(self, credentials: Credentials) -> Driver:
        """Create a driver and verify it can reach the server"""
        logger.info(
            "Initializing Neo4j driver",
            uri=self.uri,
            user=credentials.principal,
        )
        driver = GraphDatabase.driver(
            self.uri,
            auth=credentials.as_auth(),
            max_connection_lifetime=3600,
            connection_acquisition_timeout=60,
        )
        try:
            driver.verify_connectivity()
        except Exception:
            driver.close()
            raise
        logger.info("Neo4j driver initialized successfully")
        return driver

    def close_driver(self, driver: Optional[Driver]) -> None:
        """Close a driver, logging rather than raising on cleanup failures"""
        if driver is None:
            return
        try:
            driver.close()
        except Exception as exc:
            logger.warning("Neo4j driver close failed", error=str(exc))

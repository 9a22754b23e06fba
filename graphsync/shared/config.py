# Configuration loader with environment variable support
# YAML holds mappings and sync tuning; the environment holds connection secrets.

import logging
import os
from enum import Enum
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import GraphSyncBaseModel

logger = logging.getLogger(__name__)

DEFAULT_NODE_LABEL = "Note"
DEFAULT_HISTORY_MAX_ENTRIES = 50


class NodePropertyType(str, Enum):
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    DATE = "date"
    DATETIME = "datetime"
    STRING = "string"
    LIST_STRING = "list_string"


class RelationshipDirection(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class LabelRuleType(str, Enum):
    TAG = "tag"
    PATH = "path"


class NodePropertyMapping(BaseModel):
    """Front-matter property copied onto the document node."""

    property_name: str
    node_property_type: NodePropertyType = NodePropertyType.STRING
    node_property_name: Optional[str] = None
    enabled: bool = False

    @field_validator("property_name")
    @classmethod
    def _property_name_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("property_name must be provided for node mappings")
        return value.strip()

    @model_validator(mode="after")
    def _default_node_property_name(self) -> "NodePropertyMapping":
        if not self.node_property_name:
            self.node_property_name = self.property_name
        return self


class RelationshipMapping(BaseModel):
    """Front-matter property whose link targets become relationships."""

    property_name: str
    relationship_type: str = ""
    direction: RelationshipDirection = RelationshipDirection.OUTGOING
    enabled: bool = False

    @field_validator("property_name")
    @classmethod
    def _property_name_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("property_name must be provided for relationship mappings")
        return value.strip()


class LabelRule(BaseModel):
    """Classification label applied to documents matching a tag or folder."""

    label_name: str
    type: LabelRuleType = LabelRuleType.TAG
    pattern: str = ""
    enabled: bool = True

    @field_validator("pattern")
    @classmethod
    def _strip_pattern(cls, value: str) -> str:
        value = (value or "").strip()
        if value.startswith("#"):
            value = value[1:]
        return value.strip("/")


class MappingConfig(BaseModel):
    node_properties: List[NodePropertyMapping] = Field(default_factory=list)
    relationships: List[RelationshipMapping] = Field(default_factory=list)
    labels: List[LabelRule] = Field(default_factory=list)

    def enabled_node_properties(self) -> List[NodePropertyMapping]:
        return [m for m in self.node_properties if m.enabled]

    def enabled_relationships(self) -> List[RelationshipMapping]:
        return [m for m in self.relationships if m.enabled]

    def enabled_labels(self) -> List[LabelRule]:
        return [r for r in self.labels if r.enabled]

    def enabled_node_property_names(self) -> List[str]:
        return [m.property_name for m in self.enabled_node_properties()]

    def enabled_relationship_names(self) -> List[str]:
        return [m.property_name for m in self.enabled_relationships()]

    def enabled_label_names(self) -> List[str]:
        # Several rules may share one label; keep first-seen order
        names: List[str] = []
        for rule in self.enabled_labels():
            if rule.label_name not in names:
                names.append(rule.label_name)
        return names

    def set_enabled(self, name: str, enabled: bool = True) -> bool:
        """Toggle every mapping or rule declared under ``name``; False if none exists."""
        found = False
        for mapping in [*self.node_properties, *self.relationships]:
            if mapping.property_name == name:
                mapping.enabled = enabled
                found = True
        for rule in self.labels:
            if rule.label_name == name:
                rule.enabled = enabled
                found = True
        return found


class SyncConfig(BaseModel):
    vault_path: Optional[str] = None
    node_label: str = DEFAULT_NODE_LABEL
    batch_size: Optional[int] = Field(default=None, gt=0)
    history_path: Optional[str] = None
    history_max_entries: int = Field(default=DEFAULT_HISTORY_MAX_ENTRIES, gt=0)
    cancel_grace_seconds: float = Field(default=5.0, ge=0)
    pause_poll_seconds: float = Field(default=0.1, gt=0)
    # Classify full syncs by set containment instead of the stored scope tag
    legacy_full_sync_detection: bool = False

    @field_validator("node_label")
    @classmethod
    def _node_label_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("node_label cannot be empty")
        return value.strip()


class Config(GraphSyncBaseModel):
    """Main configuration model"""

    sync: SyncConfig = Field(default_factory=SyncConfig)
    mappings: MappingConfig = Field(default_factory=MappingConfig)


class Settings(BaseSettings):
    """Environment-based settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="development", alias="ENV")
    config_path: Optional[str] = Field(default=None, alias="CONFIG_PATH")

    # Neo4j
    neo4j_uri: str = Field(default="neo4j://localhost:7687", alias="NEO4J_URI")
    neo4j_user: str = Field(default="neo4j", alias="NEO4J_USER")
    # Unset means the password has to be supplied interactively
    neo4j_password: Optional[str] = Field(default=None, alias="NEO4J_PASSWORD")

    # Sync tuning
    sync_batch_size: Optional[int] = Field(default=None, alias="SYNC_BATCH_SIZE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def _default_config_path(settings: Settings) -> Path:
    return Path(__file__).parent.parent.parent / "config" / f"{settings.env}.yaml"


def load_config() -> tuple[Config, Settings]:
    """
    Load configuration from YAML file and environment variables.

    Returns:
        tuple: (Config, Settings) - YAML config and environment settings

    Raises:
        FileNotFoundError: If config file not found
        ValueError: If configuration validation fails
    """
    settings = Settings()

    if settings.config_path:
        config_path = Path(settings.config_path)
    else:
        config_path = _default_config_path(settings)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, "r") as f:
        config_dict = yaml.safe_load(f) or {}

    config = Config(**config_dict)

    if settings.sync_batch_size is not None:
        if settings.sync_batch_size <= 0:
            raise ValueError(
                f"SYNC_BATCH_SIZE must be positive, got {settings.sync_batch_size}"
            )
        config.sync.batch_size = settings.sync_batch_size

    if config.sync.vault_path:
        config.sync.vault_path = os.path.expanduser(config.sync.vault_path)

    return config, settings


# Global config instances (loaded once at startup)
_config: Optional[Config] = None
_settings: Optional[Settings] = None


def get_config() -> Config:
    """Get the global Config instance"""
    global _config, _settings
    if _config is None:
        _config, _settings = load_config()
    return _config


def get_settings() -> Settings:
    """Get the global Settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_config() -> tuple[Config, Settings]:
    """Force reload of config/settings from disk and environment."""
    global _config, _settings
    _config, _settings = load_config()
    return _config, _settings

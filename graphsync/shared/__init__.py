# Shared utilities package
from .config import Config, Settings, get_config, get_settings
from .connections import ConnectionManager
from .credentials import (
    CredentialProvider,
    Credentials,
    CredentialsRequired,
    SessionCredentialStore,
    SettingsCredentialProvider,
)

__all__ = [
    "Config",
    "Settings",
    "get_config",
    "get_settings",
    "ConnectionManager",
    "CredentialProvider",
    "Credentials",
    "CredentialsRequired",
    "SessionCredentialStore",
    "SettingsCredentialProvider",
]

"""
Credential providers for the graph store.

The engine asks its provider for credentials once per sync item. A provider
either returns ``Credentials`` or raises ``CredentialsRequired`` to signal that
an interactive prompt has to run before the item can be retried.
"""

import threading
from dataclasses import dataclass
from typing import Optional, Protocol

from .config import Settings, get_settings


class CredentialsRequired(RuntimeError):
    """No secret is available; an interactive prompt must supply one."""


@dataclass(frozen=True)
class Credentials:
    principal: str
    secret: str

    def as_auth(self) -> tuple[str, str]:
        return (self.principal, self.secret)

    def __repr__(self) -> str:
        return f"Credentials(principal={self.principal!r}, secret='***')"


class CredentialProvider(Protocol):
    def get_credentials(self) -> Credentials: ...


class SettingsCredentialProvider:
    """Reads NEO4J_USER / NEO4J_PASSWORD from the environment settings."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def get_credentials(self) -> Credentials:
        if not self.settings.neo4j_password:
            raise CredentialsRequired("Password not available")
        return Credentials(self.settings.neo4j_user, self.settings.neo4j_password)


class SessionCredentialStore:
    """
    Keeps the password in memory for the current process only.

    Nothing is written to disk; ``clear()`` drops the secret.
    """

    def __init__(self, principal: str = "neo4j"):
        self.principal = principal
        self._secret: Optional[str] = None
        self._lock = threading.Lock()

    def set_password(self, secret: str, principal: Optional[str] = None) -> None:
        with self._lock:
            self._secret = secret
            if principal:
                self.principal = principal

    def clear(self) -> None:
        with self._lock:
            self._secret = None

    def has_password(self) -> bool:
        return self._secret is not None

    def get_credentials(self) -> Credentials:
        with self._lock:
            if self._secret is None:
                raise CredentialsRequired("Password not available")
            return Credentials(self.principal, self._secret)

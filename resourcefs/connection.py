"""Connection context and the credential provider interface.

Token acquisition lives outside this package. The filesystem only needs a
bearer token and the API endpoint for a host, which it gets from a
CredentialProvider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import urlparse

from .exceptions import UnavailableError


@dataclass(frozen=True)
class ConnectionContext:
    """Credentials and endpoint for one resource store."""

    token: str
    api_url: str

    def __post_init__(self):
        # Frozen dataclass, so bypass __setattr__ to normalize the URL
        object.__setattr__(self, "api_url", self.api_url.rstrip("/"))

    @property
    def host(self) -> str:
        """Host key distinguishing which store the tree reflects."""
        return urlparse(self.api_url).netloc or self.api_url


class CredentialProvider(ABC):
    """Resolves a host into a usable ConnectionContext."""

    @abstractmethod
    async def get_connection(self, host: str) -> ConnectionContext:
        """Return a connection for ``host``.

        Raises:
            UnavailableError: If no usable credentials exist for the host
        """


class StaticCredentialProvider(CredentialProvider):
    """Provider backed by a fixed mapping of host to connection."""

    def __init__(self, connections: dict[str, ConnectionContext] | None = None):
        self._connections = dict(connections or {})

    def add(self, connection: ConnectionContext) -> None:
        self._connections[connection.host] = connection

    async def get_connection(self, host: str) -> ConnectionContext:
        connection = self._connections.get(host)
        if connection is None:
            raise UnavailableError(f"No saved environment for {host}")
        if not connection.token:
            raise UnavailableError(f"No access token configured for {host}")
        return connection

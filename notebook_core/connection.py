"""
Remote (Spark/Hadoop) connection profiles and the context provider contract.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field

from notebook_core.config import settings

HADOOP_KNOX_PROVIDER = "HADOOP_KNOX"
HOST_OPTION = "host"
KNOX_PORT_OPTION = "knoxport"
USER_OPTION = "user"


class ConnectionProfile(BaseModel):
    """A saved connection, as supplied by the host's connection service."""
    id: str
    provider_name: str = ""
    options: dict[str, Any] = Field(default_factory=dict)

    @property
    def host(self) -> Optional[str]:
        return self.options.get(HOST_OPTION)

    def is_valid_knox(self) -> bool:
        return self.provider_name == HADOOP_KNOX_PROVIDER and self.host is not None


class DefaultConnection(BaseModel):
    """Connections applicable to the active kernel, most recently used first."""
    default_connection: Optional[ConnectionProfile] = None
    other_connections: list[ConnectionProfile] = Field(default_factory=list)


class NotebookConnection:
    """Gateway endpoint derived from a Knox connection profile."""

    def __init__(self, profile: ConnectionProfile, gateway_port: Optional[int] = None):
        if profile is None or not profile.host:
            raise ValueError("Connection profile does not specify a host")
        self.connection_profile = profile
        self.host: str = profile.host
        self.user: Optional[str] = profile.options.get(USER_OPTION)
        port = profile.options.get(KNOX_PORT_OPTION) or gateway_port or settings.gateway_port
        self.gateway_port = int(port)

    @property
    def yarn_proxy_url(self) -> str:
        return f"https://{self.host}:{self.gateway_port}/gateway/default/yarn/proxy"

    def __repr__(self) -> str:
        return f"NotebookConnection(host={self.host!r}, gateway_port={self.gateway_port})"


class ConnectionProvider(ABC):
    """Resolves the remote contexts available to a kernel."""

    @abstractmethod
    async def get_contexts_for_kernel(
        self,
        kernel_changed_args: Any,
        connection_profile: Optional[ConnectionProfile] = None,
    ) -> DefaultConnection:
        ...

"""
Tunnel data models.
"""

from dataclasses import dataclass

from pydantic import BaseModel, Field


class SSHConfig(BaseModel):
    """SSH connection parameters supplied by the desktop shell."""

    host: str = Field(..., min_length=1)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(..., min_length=1)
    password: str = ""


@dataclass
class TunnelState:
    """Snapshot of the tunnel for status displays."""

    connected: bool
    host: str | None = None
    docker_endpoint: str | None = None
    mysql_endpoint: str | None = None

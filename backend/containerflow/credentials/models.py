"""
Credential data models
"""

from dataclasses import dataclass, field


@dataclass
class RootCredential:
    password: str
    user: str = "root"


@dataclass
class MetricsCredential:
    user: str
    password: str
    dsn: str


@dataclass
class WordPressCredential:
    db_user: str
    db_password: str
    db_name: str


@dataclass
class CredentialState:
    """Secrets known to the current session. Never written to disk."""

    root: RootCredential | None = None
    metrics: MetricsCredential | None = None
    wordpress_projects: dict[str, WordPressCredential] = field(default_factory=dict)
    initialized: bool = False


def build_dsn(user: str, password: str, host: str = "mysql", port: int = 3306) -> str:
    """DATA_SOURCE_NAME for mysqld-exporter: user:password@(host:port)/"""
    return f"{user}:{password}@({host}:{port})/"


def parse_dsn(dsn: str) -> tuple[str, str] | None:
    """Extract (user, password) from a user:password@(host:port)/ DSN"""
    userinfo, sep, _ = dsn.rpartition("@")
    if not sep or ":" not in userinfo:
        return None
    user, _, password = userinfo.partition(":")
    return user, password

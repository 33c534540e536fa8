"""
Credentials - session cache of MySQL and WordPress secrets
"""

from containerflow.credentials.models import (
    CredentialState,
    MetricsCredential,
    RootCredential,
    WordPressCredential,
    build_dsn,
    parse_dsn,
)
from containerflow.credentials.store import CredentialStore, get_credential_store

__all__ = [
    "CredentialStore",
    "get_credential_store",
    "CredentialState",
    "RootCredential",
    "MetricsCredential",
    "WordPressCredential",
    "build_dsn",
    "parse_dsn",
]

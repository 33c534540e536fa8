"""
Preferences - encrypted storage of desktop shell preferences
"""

from containerflow.preferences.encryption import PreferenceEncryption
from containerflow.preferences.store import (
    AppConfig,
    AppPreference,
    PreferenceStore,
    SSHPreferences,
    get_preference_store,
)

__all__ = [
    "AppConfig",
    "AppPreference",
    "PreferenceEncryption",
    "PreferenceStore",
    "SSHPreferences",
    "get_preference_store",
]

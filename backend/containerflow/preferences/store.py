"""
Preference store for the desktop shell

One JSON blob holding the last SSH target and the chosen app mode,
encrypted at rest. Passwords are never stored here.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path

from cryptography.fernet import InvalidToken

from containerflow.core.config import get_data_dir
from containerflow.preferences.encryption import PreferenceEncryption

logger = logging.getLogger(__name__)


class AppPreference(str, Enum):
    NONE = "NONE"
    BASIC = "BASIC"
    WORDPRESS = "WORDPRESS"


@dataclass
class SSHPreferences:
    host: str = ""
    port: int = 22
    username: str = "root"


@dataclass
class AppConfig:
    ssh: SSHPreferences = field(default_factory=SSHPreferences)
    preference: AppPreference = AppPreference.NONE

    def to_dict(self) -> dict:
        data = asdict(self)
        data["preference"] = self.preference.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        ssh = data.get("ssh") or {}
        try:
            preference = AppPreference(data.get("preference", AppPreference.NONE.value))
        except ValueError:
            logger.warning(f"Unknown app preference {data.get('preference')!r}, using NONE")
            preference = AppPreference.NONE
        return cls(
            ssh=SSHPreferences(
                host=ssh.get("host", ""),
                port=int(ssh.get("port", 22)),
                username=ssh.get("username", "root"),
            ),
            preference=preference,
        )


class PreferenceStore:
    """
    Encrypted preference storage

    Preferences are stored in <data dir>/preferences.encrypted and the key in
    <data dir>/encryption.key.
    """

    def __init__(self, store_path: Path | None = None):
        """
        Args:
            store_path: Directory for the blob and its key. If None, uses get_data_dir()
        """
        if store_path is None:
            store_path = get_data_dir()

        self.store_path = store_path
        self.preferences_file = store_path / "preferences.encrypted"
        self.encryption = PreferenceEncryption(store_path / "encryption.key")
        self.store_path.mkdir(parents=True, exist_ok=True)

    def get(self) -> AppConfig:
        """Stored preferences, or defaults when missing or unreadable"""
        if not self.preferences_file.exists():
            return AppConfig()

        try:
            data = json.loads(self.encryption.decrypt(self.preferences_file.read_text()))
        except (InvalidToken, json.JSONDecodeError) as e:
            logger.error(f"Failed to read preferences, using defaults: {e}")
            return AppConfig()
        return AppConfig.from_dict(data)

    def save(self, config: AppConfig) -> None:
        encrypted = self.encryption.encrypt(json.dumps(config.to_dict(), indent=2))
        self.preferences_file.write_text(encrypted)
        self.preferences_file.chmod(0o600)
        logger.debug(f"Preferences saved to {self.preferences_file}")


# Global preference store instance
_store: PreferenceStore | None = None


def get_preference_store() -> PreferenceStore:
    """Get the global preference store instance"""
    global _store
    if _store is None:
        _store = PreferenceStore()
    return _store

"""
Preference encryption using Fernet (symmetric encryption)
"""

import logging
from pathlib import Path

from cryptography.fernet import Fernet

logger = logging.getLogger(__name__)


class PreferenceEncryption:
    """
    Handles encryption/decryption of the preference blob using Fernet

    The key lives next to the blob in the data directory. Losing the key
    means the stored preferences fall back to defaults.
    """

    def __init__(self, key_path: Path):
        self.key_path = key_path
        self._fernet: Fernet | None = None

    def _ensure_key_exists(self) -> None:
        """Create encryption key if it doesn't exist"""
        if not self.key_path.exists():
            logger.info(f"Generating new encryption key: {self.key_path}")
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            self.key_path.write_bytes(Fernet.generate_key())
            # Owner read/write only
            self.key_path.chmod(0o600)

    @property
    def fernet(self) -> Fernet:
        """Get Fernet cipher instance (lazy-loaded)"""
        if self._fernet is None:
            self._ensure_key_exists()
            self._fernet = Fernet(self.key_path.read_bytes())
        return self._fernet

    def encrypt(self, plaintext: str) -> str:
        return self.fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, encrypted: str) -> str:
        """
        Raises:
            cryptography.fernet.InvalidToken: If decryption fails
        """
        return self.fernet.decrypt(encrypted.encode()).decode()

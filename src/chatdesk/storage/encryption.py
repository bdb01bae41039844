"""
Encryption manager for stored values.
"""

import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


class EncryptionManager:
    """Fernet encryption with keys derived from one master key per key id."""

    def __init__(self, master_key: str, key_id: str = "primary_v1"):
        if not master_key:
            raise ValueError("Encryption requires a master key")
        self._master_key = master_key
        self._encryption_keys: dict[str, Fernet] = {}
        self._current_key_id = key_id
        self._encryption_keys[key_id] = Fernet(self._derive_key(key_id))

    def _derive_key(self, key_id: str) -> bytes:
        # key id doubles as the salt
        salt = key_id.encode("utf-8").ljust(16, b"0")[:16]

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        return base64.urlsafe_b64encode(kdf.derive(self._master_key.encode()))

    @property
    def current_key_id(self) -> str:
        return self._current_key_id

    def encrypt(self, data: str) -> tuple[str, str]:
        """
        Encrypt data and return (encrypted_data, key_id).

        Returns:
            Tuple of (base64_encrypted_data, key_id_used)
        """
        fernet = self._encryption_keys[self._current_key_id]
        encrypted_bytes = fernet.encrypt(data.encode("utf-8"))
        return base64.b64encode(encrypted_bytes).decode("utf-8"), self._current_key_id

    def decrypt(self, encrypted_data: str, key_id: str) -> str:
        """Decrypt data written under ``key_id``."""
        if key_id not in self._encryption_keys:
            self._encryption_keys[key_id] = Fernet(self._derive_key(key_id))

        fernet = self._encryption_keys[key_id]
        try:
            decrypted_bytes = fernet.decrypt(base64.b64decode(encrypted_data.encode("utf-8")))
        except InvalidToken as e:
            raise ValueError(f"Value encrypted with key {key_id} cannot be decrypted") from e
        return decrypted_bytes.decode("utf-8")

    def rotate_key(self, new_key_id: str) -> None:
        """Use a new key for future encryptions; existing values stay readable."""
        self._encryption_keys[new_key_id] = Fernet(self._derive_key(new_key_id))
        self._current_key_id = new_key_id

"""AES-256-GCM encryption for the Wi-Fi password in config files.

A config file may store ``device.password`` as ``encrypted:<base64>``; the
key lives in a separate file readable only by its owner.
"""

from pathlib import Path
from typing import Optional, Dict, Any
import base64
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from floracli.core.exceptions import FloraCliError

NONCE_SIZE = 12
KEY_SIZE = 32


class ConfigEncryptionError(FloraCliError):
    """Key handling, encryption or decryption failed."""
    pass


class ConfigEncryption:
    """Encrypts and decrypts sensitive config values.

    When disabled, every operation passes values through unchanged.

    Example:
        >>> encryption = ConfigEncryption(enabled=True, key_path=Path("/tmp/flora.key"))
        >>> token = encryption.encrypt_value("hunter2")
        >>> token.startswith("encrypted:")
        True
        >>> encryption.decrypt_value(token)
        'hunter2'
    """

    ENCRYPTED_PREFIX = "encrypted:"
    DEFAULT_KEY_PATH = Path.home() / ".flora-cli" / ".key"
    SENSITIVE_FIELDS = (("device", "password"),)

    def __init__(self, enabled: bool = True, key_path: Optional[Path] = None):
        """Initialize encryption handler, loading or creating the key if enabled.

        Raises:
            ConfigEncryptionError: Key file cannot be read or created
        """
        self.enabled = enabled
        self.key_path = Path(key_path).expanduser() if key_path else self.DEFAULT_KEY_PATH
        self._key: Optional[bytes] = None

        if self.enabled:
            self._key = self._load_or_create_key()

    def _load_or_create_key(self) -> bytes:
        try:
            if self.key_path.exists():
                key = base64.b64decode(self.key_path.read_bytes())
                if len(key) != KEY_SIZE:
                    raise ConfigEncryptionError(
                        f"Invalid key length: expected {KEY_SIZE} bytes, got {len(key)}"
                    )
                return key

            key = secrets.token_bytes(KEY_SIZE)
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            self.key_path.write_bytes(base64.b64encode(key))
            try:
                os.chmod(self.key_path, 0o600)
            except NotImplementedError:
                pass
            return key
        except (OSError, ValueError) as e:
            raise ConfigEncryptionError(f"Failed to initialize encryption key: {e}")

    def is_encrypted(self, value: Any) -> bool:
        """True if ``value`` is a string carrying the ``encrypted:`` prefix."""
        return isinstance(value, str) and value.startswith(self.ENCRYPTED_PREFIX)

    def encrypt_value(self, plaintext: str) -> str:
        """Encrypt ``plaintext``; returns it unchanged when disabled or empty."""
        if not self.enabled or not plaintext:
            return plaintext

        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = AESGCM(self._key).encrypt(nonce, plaintext.encode('utf-8'), None)
        encoded = base64.b64encode(nonce + ciphertext).decode('ascii')
        return f"{self.ENCRYPTED_PREFIX}{encoded}"

    def decrypt_value(self, value: str) -> str:
        """Decrypt an ``encrypted:`` value; other values pass through.

        Raises:
            ConfigEncryptionError: Wrong key or corrupted value
        """
        if not self.enabled or not self.is_encrypted(value):
            return value

        try:
            data = base64.b64decode(value[len(self.ENCRYPTED_PREFIX):], validate=True)
            nonce, ciphertext = data[:NONCE_SIZE], data[NONCE_SIZE:]
            return AESGCM(self._key).decrypt(nonce, ciphertext, None).decode('utf-8')
        except (InvalidTag, ValueError) as e:
            raise ConfigEncryptionError(f"Failed to decrypt value: {e or 'authentication failed'}")

    def decrypt_sensitive_fields(self, config_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``config_dict`` with sensitive fields decrypted."""
        if not self.enabled:
            return config_dict

        result = {section: dict(values) if isinstance(values, dict) else values
                  for section, values in config_dict.items()}
        for section, key in self.SENSITIVE_FIELDS:
            values = result.get(section)
            if isinstance(values, dict) and isinstance(values.get(key), str):
                values[key] = self.decrypt_value(values[key])
        return result

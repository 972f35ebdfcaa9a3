"""Token encryption service using libsodium (PyNaCl)."""

import json
import logging
from dataclasses import dataclass

import nacl.exceptions
import nacl.secret
import nacl.utils

from vitalsync.config import Settings
from vitalsync.exceptions import ConfigurationError, IntegrityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptedToken:
    """Hex-encoded ciphertext, nonce and Poly1305 tag for one token."""

    ciphertext: str
    iv: str
    auth_tag: str


class CryptoService:
    """Authenticated symmetric encryption using NaCl SecretBox (XSalsa20-Poly1305).

    The 32-byte key is supplied out-of-band as 64 hex characters. The
    authentication tag is stored separately from the ciphertext so a stored
    token is the triple {ciphertext, iv, authTag}.
    """

    def __init__(self, settings: Settings) -> None:
        key_hex = settings.token_encryption_key.get_secret_value()
        if not key_hex:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY environment variable is not set")
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as e:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY must be hex encoded") from e
        if len(key) != nacl.secret.SecretBox.KEY_SIZE:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY must be 32 bytes (64 hex characters)")
        self._box = nacl.secret.SecretBox(key)

    def encrypt(self, plaintext: str) -> EncryptedToken:
        """Encrypt a string with a fresh random nonce."""
        nonce = nacl.utils.random(nacl.secret.SecretBox.NONCE_SIZE)
        sealed = self._box.encrypt(plaintext.encode("utf-8"), nonce).ciphertext
        mac_size = nacl.secret.SecretBox.MACBYTES
        return EncryptedToken(
            ciphertext=sealed[mac_size:].hex(),
            iv=nonce.hex(),
            auth_tag=sealed[:mac_size].hex(),
        )

    def decrypt(self, token: EncryptedToken) -> str:
        """Verify and decrypt a token. Raises IntegrityError on any mismatch."""
        try:
            sealed = bytes.fromhex(token.auth_tag) + bytes.fromhex(token.ciphertext)
            plaintext = self._box.decrypt(sealed, bytes.fromhex(token.iv))
            return plaintext.decode("utf-8")
        except (nacl.exceptions.CryptoError, ValueError) as e:
            logger.error("Token decryption failed integrity check")
            raise IntegrityError("Encrypted token failed authentication") from e

    def serialize_token(self, plaintext: str) -> str:
        """Encrypt a token and pack the triple into one storable JSON string."""
        token = self.encrypt(plaintext)
        return json.dumps({"encrypted": token.ciphertext, "iv": token.iv, "authTag": token.auth_tag})

    def deserialize_token(self, serialized: str) -> str:
        """Unpack a stored JSON triple and decrypt it."""
        try:
            data = json.loads(serialized)
            token = EncryptedToken(ciphertext=data["encrypted"], iv=data["iv"], auth_tag=data["authTag"])
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise IntegrityError("Stored token is not a valid encrypted payload") from e
        return self.decrypt(token)


_crypto_service: CryptoService | None = None


def get_crypto_service(settings: Settings) -> CryptoService:
    global _crypto_service
    if _crypto_service is None:
        _crypto_service = CryptoService(settings)
    return _crypto_service

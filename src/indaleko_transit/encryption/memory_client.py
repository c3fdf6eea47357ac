"""
In-process transit oracle.

This module provides a stand-in for the Vault transit engine that is
used in development and tests when no Vault server is configured. Keys
are derived locally from a master key, one per (path, key) pair, so
ciphertext produced under one key name cannot be read under another.
"""

import base64
import binascii
import hashlib
import hmac
import os
import threading

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import TransitConfig
from ..errors import ConfigurationError, CryptoServiceError
from .transit_client import TransitClient


# Prefix of every ciphertext produced by this oracle
CIPHERTEXT_PREFIX = "vault:dev:"

DEV_MASTER_KEY = "dev-only-encryption-key-do-not-use-in-production"

_NONCE_SIZE = 12  # 96-bit nonce for GCM
_TAG_SIZE = 16


class InMemoryTransitClient(TransitClient):
    """
    AES-256-GCM transit oracle that runs inside the process.

    Randomized encryption uses a fresh random nonce per call. Convergent
    encryption derives the nonce from an HMAC of the convergent context
    and the plaintext, so equal plaintexts under the same key produce
    equal ciphertexts. The HMAC key and the AES key are separate halves
    of one derivation.
    """

    def __init__(
        self,
        master_key: str | None = None,
        *,
        convergent_context: str | None = None,
        key_iterations: int | None = None,
    ) -> None:
        """
        Initialize the oracle.

        Args:
            master_key: Optional master key; read from configuration when omitted
            convergent_context: Context mixed into convergent nonces
            key_iterations: PBKDF2 iteration count for key derivation

        Raises:
            ConfigurationError: If no master key is available in production mode
        """
        self.master_key = master_key or self._get_master_key()

        # Verify we have a master key
        if not self.master_key:
            raise ConfigurationError(
                "No master encryption key provided or found in environment"
            )

        if convergent_context is None:
            convergent_context = TransitConfig.get("vault.convergent_context", "")
        self._context = str(convergent_context).encode("utf-8")

        self.key_iterations = int(
            key_iterations or TransitConfig.get("encryption.key_iterations", 100000)
        )

        # Derived keys are deterministic, so caching them is safe
        self._keys: dict[tuple[str, str], tuple[bytes, bytes]] = {}
        self._keys_lock = threading.Lock()

    def _get_master_key(self) -> str:
        """
        Get the master encryption key from configuration or environment.

        Returns:
            The master key as a string
        """
        # Try to get from environment variable
        key = os.environ.get("INDALEKO_ENCRYPTION_KEY")
        if key:
            return key

        # Try to get from config
        key = TransitConfig.get("encryption.key")
        if key:
            return key

        # Check if we're in development mode and can use a default key
        if TransitConfig.is_dev_mode():
            return DEV_MASTER_KEY

        return ""

    def _derive_keys(self, path: str, key: str) -> tuple[bytes, bytes]:
        cache_key = (path, key)
        with self._keys_lock:
            cached = self._keys.get(cache_key)
        if cached is not None:
            return cached

        salt = hashlib.sha256(f"{path}/{key}".encode("utf-8")).digest()[:16]
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=64,  # 256-bit AES key followed by a 256-bit MAC key
            salt=salt,
            iterations=self.key_iterations,
            backend=default_backend(),
        )
        derived = kdf.derive(self.master_key.encode("utf-8"))
        keys = (derived[:32], derived[32:])

        with self._keys_lock:
            self._keys[cache_key] = keys
        return keys

    def derive_key(self, path: str, key: str) -> bytes:
        """
        Derive the data key for a transit key name.

        The salt is a digest of the path and key name, which makes the
        derivation repeatable across processes sharing a master key.

        Args:
            path: Transit mount path
            key: Transit key name

        Returns:
            A 256-bit AES key
        """
        return self._derive_keys(path, key)[0]

    def derive_mac_key(self, path: str, key: str) -> bytes:
        """Derive the HMAC key that convergent nonces are computed with."""
        return self._derive_keys(path, key)[1]

    def _nonce(self, mac_key: bytes, plaintext: bytes, convergent: bool) -> bytes:
        if not convergent:
            return os.urandom(_NONCE_SIZE)
        digest = hmac.new(mac_key, self._context + b"\x00" + plaintext, hashlib.sha256).digest()
        return digest[:_NONCE_SIZE]

    def _encrypt(self, path: str, key: str, plaintext: str, convergent: bool) -> str:
        data_key, mac_key = self._derive_keys(path, key)
        value_bytes = plaintext.encode("utf-8")
        iv = self._nonce(mac_key, value_bytes, convergent)

        cipher = Cipher(algorithms.AES(data_key), modes.GCM(iv), backend=default_backend())
        encryptor = cipher.encryptor()
        ciphertext = encryptor.update(value_bytes) + encryptor.finalize()

        # nonce | ciphertext | tag
        token = base64.b64encode(iv + ciphertext + encryptor.tag).decode("ascii")
        return CIPHERTEXT_PREFIX + token

    def _decrypt(self, path: str, key: str, ciphertext: str, convergent: bool) -> str:
        if not ciphertext.startswith(CIPHERTEXT_PREFIX):
            raise CryptoServiceError(f"Ciphertext for key '{key}' was not produced by the dev oracle")

        try:
            raw = base64.b64decode(ciphertext[len(CIPHERTEXT_PREFIX):], validate=True)
        except binascii.Error as e:
            raise CryptoServiceError(f"Ciphertext for key '{key}' is not valid base64") from e

        if len(raw) < _NONCE_SIZE + _TAG_SIZE:
            raise CryptoServiceError(f"Ciphertext for key '{key}' is truncated")

        iv = raw[:_NONCE_SIZE]
        tag = raw[-_TAG_SIZE:]
        body = raw[_NONCE_SIZE:-_TAG_SIZE]

        data_key = self.derive_key(path, key)
        cipher = Cipher(algorithms.AES(data_key), modes.GCM(iv, tag), backend=default_backend())
        decryptor = cipher.decryptor()
        try:
            decrypted = decryptor.update(body) + decryptor.finalize()
        except InvalidTag as e:
            raise CryptoServiceError(f"Ciphertext for key '{key}' at '{path}' failed authentication") from e

        return decrypted.decode("utf-8")

"""
Transit encryption clients.

This module provides the facade the rest of the package uses to reach a
transit-style encryption service. Only the clients defined here (and in
memory_client) perform cryptographic work; models never touch keys.
"""

import base64
import binascii
import logging
import threading
from abc import ABC, abstractmethod

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import TransitConfig
from ..errors import CryptoServiceError


logger = logging.getLogger(__name__)


class TransitClient(ABC):
    """
    Synchronous encrypt/decrypt facade over a transit engine.

    Subclasses implement the service round trip; this base class owns the
    null handling shared by every backend:

    - encrypting None yields None and encrypting "" yields "", without a
      service call, so an empty column stays recognisably empty
    - decrypting None or "" returns it unchanged, without a service call

    Implementations keep no per-call state and may be shared between
    threads.
    """

    def encrypt(
        self,
        path: str,
        key: str,
        plaintext: str | None,
        convergent: bool = False,
    ) -> str | None:
        """
        Encrypt plaintext with the named key.

        Args:
            path: Mount path of the transit engine
            key: Name of the transit key
            plaintext: Value to encrypt
            convergent: Whether identical plaintext must yield identical ciphertext

        Returns:
            The ciphertext token, or the null token for empty input

        Raises:
            CryptoServiceError: If the service call fails
        """
        if plaintext is None or plaintext == "":
            return plaintext
        if not isinstance(plaintext, str):
            raise TypeError(f"plaintext must be str, got {type(plaintext).__name__}")

        logger.debug("encrypt path=%s key=%s convergent=%s", path, key, convergent)
        return self._encrypt(str(path), str(key), plaintext, convergent)

    def decrypt(
        self,
        path: str,
        key: str,
        ciphertext: str | None,
        convergent: bool = False,
    ) -> str | None:
        """
        Decrypt ciphertext with the named key.

        Args:
            path: Mount path of the transit engine
            key: Name of the transit key
            ciphertext: Token previously returned by encrypt
            convergent: Whether the token was produced convergently

        Returns:
            The plaintext, or None when nothing was ever stored

        Raises:
            CryptoServiceError: If the service call fails
        """
        if ciphertext is None or ciphertext == "":
            return ciphertext

        logger.debug("decrypt path=%s key=%s convergent=%s", path, key, convergent)
        return self._decrypt(str(path), str(key), ciphertext, convergent)

    @abstractmethod
    def _encrypt(self, path: str, key: str, plaintext: str, convergent: bool) -> str:
        """Perform the service round trip for a non-empty plaintext."""

    @abstractmethod
    def _decrypt(self, path: str, key: str, ciphertext: str, convergent: bool) -> str:
        """Perform the service round trip for a non-empty ciphertext."""

    def close(self) -> None:
        """Release any transport resources held by the client."""


class VaultTransitClient(TransitClient):
    """
    Client for the HashiCorp Vault transit secrets engine.

    Requests go through one pooled requests.Session. Timeouts and
    transport retries are properties of the session, not of the callers.
    """

    def __init__(
        self,
        address: str | None = None,
        token: str | None = None,
        *,
        namespace: str | None = None,
        timeout: float | None = None,
        retries: int | None = None,
        convergent_context: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """
        Initialize the Vault client.

        Args:
            address: Base URL of the Vault server
            token: Vault token sent as X-Vault-Token
            namespace: Optional Vault Enterprise namespace
            timeout: Per-request timeout in seconds
            retries: Transport-level retry count for connection errors and 5xx
            convergent_context: Context string used for convergent keys
            session: Optional pre-configured session (mostly for tests)
        """
        settings = TransitConfig.get_vault_settings()

        self.address = (address or settings["address"]).rstrip("/")
        self.token = token if token is not None else settings["token"]
        self.namespace = namespace if namespace is not None else settings["namespace"]
        self.timeout = timeout if timeout is not None else settings["timeout"]
        context = convergent_context if convergent_context is not None else settings["convergent_context"]
        self._context = base64.b64encode(str(context).encode("utf-8")).decode("ascii")

        self.session = session or requests.Session()
        retry_count = retries if retries is not None else settings["retries"]
        if retry_count:
            retry = Retry(
                total=int(retry_count),
                backoff_factor=0.2,
                status_forcelist=(500, 502, 503, 504),
                allowed_methods=frozenset(["POST"]),
            )
            adapter = HTTPAdapter(max_retries=retry)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    def _headers(self) -> dict[str, str]:
        headers = {"X-Vault-Token": self.token, "Content-Type": "application/json"}
        if self.namespace:
            headers["X-Vault-Namespace"] = self.namespace
        return headers

    def _post(self, path: str, operation: str, key: str, payload: dict[str, str]) -> dict:
        url = f"{self.address}/v1/{path.strip('/')}/{operation}/{key}"

        try:
            response = self.session.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise CryptoServiceError(f"Vault {operation} request to {url} failed: {e}") from e

        if response.status_code >= 400:
            try:
                errors = response.json().get("errors", [])
            except ValueError:
                errors = [response.text]
            raise CryptoServiceError(
                f"Vault {operation} for key '{key}' at '{path}' returned {response.status_code}",
                status_code=response.status_code,
                errors=errors,
            )

        try:
            return response.json()["data"]
        except (ValueError, KeyError, TypeError) as e:
            raise CryptoServiceError(f"Vault {operation} returned a malformed response: {e}") from e

    def _encrypt(self, path: str, key: str, plaintext: str, convergent: bool) -> str:
        payload = {"plaintext": base64.b64encode(plaintext.encode("utf-8")).decode("ascii")}
        if convergent:
            payload["context"] = self._context

        data = self._post(path, "encrypt", key, payload)
        try:
            return data["ciphertext"]
        except KeyError as e:
            raise CryptoServiceError("Vault encrypt response has no ciphertext") from e

    def _decrypt(self, path: str, key: str, ciphertext: str, convergent: bool) -> str:
        payload = {"ciphertext": ciphertext}
        if convergent:
            payload["context"] = self._context

        data = self._post(path, "decrypt", key, payload)
        try:
            return base64.b64decode(data["plaintext"], validate=True).decode("utf-8")
        except (KeyError, TypeError, binascii.Error, UnicodeDecodeError) as e:
            raise CryptoServiceError(f"Vault decrypt returned unusable plaintext: {e}") from e

    def close(self) -> None:
        self.session.close()


_default_client: TransitClient | None = None
_default_client_lock = threading.Lock()


def get_transit_client() -> TransitClient:
    """
    Get the process-wide transit client, creating it on first use.

    Vault is used when ``vault.enabled`` is set; otherwise an in-process
    oracle stands in for it.

    Returns:
        The shared transit client
    """
    global _default_client

    with _default_client_lock:
        if _default_client is None:
            if TransitConfig.is_vault_enabled():
                _default_client = VaultTransitClient()
            else:
                from .memory_client import InMemoryTransitClient
                _default_client = InMemoryTransitClient()
            logger.info("Using %s for transit encryption", type(_default_client).__name__)
        return _default_client


def set_transit_client(client: TransitClient | None) -> None:
    """
    Replace the process-wide transit client.

    Passing None drops the current client so the next call to
    get_transit_client builds a fresh one from configuration.
    """
    global _default_client

    with _default_client_lock:
        _default_client = client

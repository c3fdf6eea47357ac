"""
Pytest configuration for Indaleko Transit tests.
"""

import base64
import os
import uuid
from typing import Generator

import pytest

from indaleko_transit.config import TransitConfig
from indaleko_transit.db import MemoryRecordStore, set_record_store
from indaleko_transit.encryption import TransitClient, set_transit_client
from indaleko_transit.errors import CryptoServiceError


class RecordingTransitClient(TransitClient):
    """
    Fake transit engine that records every service call.

    Tokens embed the path, key and plaintext, so decrypting with the wrong
    key fails the way a real engine would. Randomized tokens carry a fresh
    nonce; convergent tokens do not.
    """

    PREFIX = "vault:v1:"

    def __init__(self) -> None:
        self.encrypt_calls: list[tuple[str, str, str, bool]] = []
        self.decrypt_calls: list[tuple[str, str, str, bool]] = []
        self.fail = False

    @staticmethod
    def _b64(value: str) -> str:
        return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii")

    def _encrypt(self, path: str, key: str, plaintext: str, convergent: bool) -> str:
        self.encrypt_calls.append((path, key, plaintext, convergent))
        if self.fail:
            raise CryptoServiceError("transit engine unavailable", status_code=503)

        nonce = "c" if convergent else uuid.uuid4().hex
        return f"{self.PREFIX}{self._b64(f'{path}/{key}')}.{self._b64(plaintext)}.{nonce}"

    def _decrypt(self, path: str, key: str, ciphertext: str, convergent: bool) -> str:
        self.decrypt_calls.append((path, key, ciphertext, convergent))
        if self.fail:
            raise CryptoServiceError("transit engine unavailable", status_code=503)

        try:
            key_part, text_part, _ = ciphertext[len(self.PREFIX):].split(".")
        except ValueError:
            raise CryptoServiceError("invalid ciphertext", status_code=400) from None
        if key_part != self._b64(f"{path}/{key}"):
            raise CryptoServiceError("cipher: message authentication failed", status_code=400)
        return base64.urlsafe_b64decode(text_part).decode("utf-8")

    def reset_calls(self) -> None:
        self.encrypt_calls.clear()
        self.decrypt_calls.clear()


@pytest.fixture
def dev_mode_env() -> Generator[None, None, None]:
    """
    Set up environment for development mode testing.

    This fixture ensures that the INDALEKO_MODE environment variable
    is set to 'DEV' during the test, and then restores the original
    value afterward.
    """
    original_mode = os.environ.get("INDALEKO_MODE")
    os.environ["INDALEKO_MODE"] = "DEV"
    TransitConfig.initialize()

    yield

    if original_mode is not None:
        os.environ["INDALEKO_MODE"] = original_mode
    else:
        del os.environ["INDALEKO_MODE"]
    TransitConfig.initialize()


@pytest.fixture
def prod_mode_env() -> Generator[None, None, None]:
    """
    Set up environment for production mode testing.

    This fixture ensures that the INDALEKO_MODE environment variable
    is set to 'PROD' and no master key is present during the test, and
    then restores the original values afterward.
    """
    original_mode = os.environ.get("INDALEKO_MODE")
    original_key = os.environ.pop("INDALEKO_ENCRYPTION_KEY", None)
    os.environ["INDALEKO_MODE"] = "PROD"
    TransitConfig.initialize()

    yield

    if original_mode is not None:
        os.environ["INDALEKO_MODE"] = original_mode
    else:
        del os.environ["INDALEKO_MODE"]
    if original_key is not None:
        os.environ["INDALEKO_ENCRYPTION_KEY"] = original_key
    TransitConfig.initialize()


@pytest.fixture
def transit_client() -> Generator[RecordingTransitClient, None, None]:
    """
    Install a recording fake as the process-wide transit client.
    """
    client = RecordingTransitClient()
    set_transit_client(client)

    yield client

    set_transit_client(None)


@pytest.fixture
def record_store() -> Generator[MemoryRecordStore, None, None]:
    """
    Install a fresh in-memory record store as the process-wide store.
    """
    store = MemoryRecordStore()
    set_record_store(store)

    yield store

    set_record_store(None)

"""
Attribute lifecycle controller.

This module owns the per-instance state of encrypted attributes: the
decrypted plaintext cache, the change tracking that decides which
attributes must be re-encrypted on save, and the load/reload protocol.

Each attribute moves through these states:

    UNLOADED --load--> LOADED --assign--> DIRTY --save--> PERSISTED
       ^                                                     |
       +------------------------reload-----------------------+

Only DIRTY attributes reach the transit service on save.
"""

import logging
from copy import deepcopy
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

from ..encryption import TransitClient
from ..errors import SerializationError
from ..registry import AttributePolicy
from ..serializers import decode_value, encode_value


logger = logging.getLogger(__name__)


class AttributeState(Enum):
    """Lifecycle state of one encrypted attribute on one instance."""

    # Plaintext not yet decrypted
    UNLOADED = "unloaded"

    # Plaintext decrypted from the stored ciphertext
    LOADED = "loaded"

    # Plaintext assigned and not yet saved
    DIRTY = "dirty"

    # Plaintext encrypted and accepted by the record store
    PERSISTED = "persisted"


class ColumnAccess(Protocol):
    """Raw column access the controller needs from its record."""

    def read_column(self, column: str) -> Any: ...

    def write_column(self, column: str, value: Any) -> None: ...


@dataclass
class AttributeSlot:
    """Cached plaintext of one attribute."""

    value: Any = None

    # Value as last loaded or persisted, for change queries
    original: Any = None

    state: AttributeState = AttributeState.UNLOADED


class AttributeLifecycleController:
    """
    Decrypts, tracks and encrypts the encrypted attributes of one record.

    The controller is not thread-safe; a record is used by one thread at
    a time.
    """

    def __init__(
        self,
        record: ColumnAccess,
        policies: list[AttributePolicy],
        client: TransitClient,
        *,
        lazy: bool = False,
    ) -> None:
        """
        Initialize the controller.

        Args:
            record: The record whose columns hold the ciphertext
            policies: Policies of the record's type, in definition order
            client: Transit client used for every encrypt/decrypt call
            lazy: Defer decryption until each attribute is first read
        """
        self.record = record
        self.client = client
        self.lazy = lazy
        self._policies: dict[str, AttributePolicy] = {p.name: p for p in policies}
        self._slots: dict[str, AttributeSlot] = {name: AttributeSlot() for name in self._policies}

    def bind(
        self, record: ColumnAccess, *, deep: bool = False, memo: dict[int, Any] | None = None
    ) -> "AttributeLifecycleController":
        """
        Copy the controller's attribute state onto another record.

        The copy shares the policies and the transit client. Slot values are
        copied shallowly unless deep is set.
        """
        copied = AttributeLifecycleController(record, self.policies, self.client, lazy=self.lazy)
        for name, slot in self._slots.items():
            copied._slots[name] = deepcopy(slot, memo) if deep else replace(slot)
        return copied

    def __deepcopy__(self, memo: dict[int, Any]) -> "AttributeLifecycleController":
        # The owning model rebinds the record after copying itself
        return self.bind(self.record, deep=True, memo=memo)

    @property
    def policies(self) -> list[AttributePolicy]:
        return list(self._policies.values())

    def _policy(self, name: str) -> AttributePolicy:
        try:
            return self._policies[name]
        except KeyError:
            raise AttributeError(f"'{name}' is not an encrypted attribute") from None

    def state(self, name: str) -> AttributeState:
        """Get the lifecycle state of an attribute."""
        self._policy(name)
        return self._slots[name].state

    def load(self) -> None:
        """
        Decrypt every attribute from its ciphertext column.

        Does nothing in lazy mode. Attributes already assigned by the
        caller keep their assigned value.
        """
        if self.lazy:
            return

        for policy in self._policies.values():
            self._load_attribute(policy)

    def _load_attribute(self, policy: AttributePolicy) -> None:
        slot = self._slots[policy.name]

        # A value the caller set before loading must not be clobbered
        if slot.state is AttributeState.DIRTY:
            return

        ciphertext = self.record.read_column(policy.encrypted_column)
        plaintext = self.client.decrypt(policy.path, policy.key, ciphertext, policy.convergent)
        value = decode_value(policy.serializer, plaintext)

        slot.value = value
        slot.original = value
        slot.state = AttributeState.LOADED
        logger.debug("Loaded encrypted attribute %s", policy.name)

    def read(self, name: str) -> Any:
        """
        Get the plaintext of an attribute, decrypting it on first access.

        Raises:
            CryptoServiceError: If the attribute cannot be decrypted
        """
        policy = self._policy(name)
        slot = self._slots[name]
        if slot.state is AttributeState.UNLOADED:
            self._load_attribute(policy)
        return slot.value

    def write(self, name: str, value: Any) -> None:
        """
        Assign the plaintext of an attribute and mark it dirty.

        Assigning always marks the attribute dirty, even when the value is
        unchanged, unless the policy turns force_dirty off.
        """
        policy = self._policy(name)
        value = policy.value_type.cast(value)
        slot = self._slots[name]

        if (
            not policy.force_dirty
            and slot.state is not AttributeState.UNLOADED
            and slot.value == value
        ):
            return

        slot.value = value
        slot.state = AttributeState.DIRTY

    def dirty_attributes(self) -> list[str]:
        """Names of attributes assigned since the last load or save."""
        return [name for name, slot in self._slots.items() if slot.state is AttributeState.DIRTY]

    def encrypt_dirty(self) -> dict[str, str | None]:
        """
        Encrypt every dirty attribute.

        Nothing is written to the record here: either every dirty
        attribute encrypts and the full mapping is returned, or the first
        failure propagates.

        Returns:
            Mapping of ciphertext column to new ciphertext

        Raises:
            CryptoServiceError: If the transit service fails
            SerializationError: If a serializer fails or returns a non-string
        """
        ciphertexts: dict[str, str | None] = {}

        for name in self.dirty_attributes():
            policy = self._policies[name]
            plaintext = encode_value(policy.serializer, self._slots[name].value)
            if plaintext is not None and not isinstance(plaintext, str):
                raise SerializationError(
                    f"Attribute '{name}' encoded to {type(plaintext).__name__}, expected str; "
                    "configure a serializer or a type for it"
                )

            ciphertexts[policy.encrypted_column] = self.client.encrypt(
                policy.path, policy.key, plaintext, policy.convergent
            )

        if ciphertexts:
            logger.debug("Encrypted %d attribute(s): %s", len(ciphertexts), sorted(ciphertexts))
        return ciphertexts

    def changes_applied(self) -> None:
        """Mark every dirty attribute persisted after a successful save."""
        for slot in self._slots.values():
            if slot.state is AttributeState.DIRTY:
                slot.original = slot.value
                slot.state = AttributeState.PERSISTED

    def clear_changes(self) -> None:
        """Drop change tracking without touching cached plaintext."""
        for slot in self._slots.values():
            if slot.state is AttributeState.DIRTY:
                slot.state = AttributeState.LOADED
            slot.original = slot.value

    def reset(self) -> None:
        """Forget every cached plaintext."""
        for name in self._slots:
            self._slots[name] = AttributeSlot()

    def reload(self) -> None:
        """
        Re-decrypt every attribute from the current ciphertext columns.

        Unsaved assignments are discarded.
        """
        self.reset()
        self.load()
        self.clear_changes()

    def changed(self, name: str) -> bool:
        """Whether an attribute was assigned since the last load or save."""
        return self.state(name) is AttributeState.DIRTY

    def was(self, name: str) -> Any:
        """Value of an attribute as last loaded or persisted."""
        self._policy(name)
        return self._slots[name].original

    def change(self, name: str) -> tuple[Any, Any] | None:
        """The (previous, current) pair of a changed attribute, else None."""
        if not self.changed(name):
            return None
        slot = self._slots[name]
        return slot.original, slot.value

    def changes(self) -> dict[str, tuple[Any, Any]]:
        """Every pending change, keyed by attribute name."""
        return {name: (self._slots[name].original, self._slots[name].value) for name in self.dirty_attributes()}

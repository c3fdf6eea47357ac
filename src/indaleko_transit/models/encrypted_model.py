"""
Base encrypted model implementation.

This module provides the foundation for database models whose sensitive
attributes are encrypted at rest through a transit engine. Application
code reads and assigns plaintext; only ciphertext columns are persisted.
"""

import logging
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict, PrivateAttr

from ..db import RecordStore, get_record_store
from ..encryption import TransitClient, get_transit_client
from ..errors import ConfigurationError, StoreError
from ..registry import policy_registry, table_name_for, validate_options
from ..registry.value_types import ValueType
from ..serializers import encode_value, resolve_serializer
from .attribute_proxy import AttributeProxy
from .lifecycle import AttributeLifecycleController, AttributeState


logger = logging.getLogger(__name__)

# Validation context flag: materialize columns without decrypting
_SKIP_LOAD = "indaleko_transit.skip_load"

# Validation context entry: plaintext assigned by the caller before load
_ASSIGNED = "indaleko_transit.assigned"


class EncryptedField:
    """
    Descriptor for an attribute encrypted through the transit engine.

    Declaring the descriptor on a model registers the attribute's policy
    when the class is created. Reading the attribute returns plaintext and
    assigning it marks the attribute for encryption on the next save.

    Example:
        class Person(EncryptedModel):
            ssn_encrypted: str | None = None
            ssn = EncryptedField()
    """

    def __init__(self, **options: Any) -> None:
        """
        Initialize an EncryptedField.

        Args:
            **options: encrypted_column, path, key, convergent, serializer,
                encode, decode, type, force_dirty

        Raises:
            ConfigurationError: If the options are invalid
        """
        # Fail while the class body runs, before the class exists
        validate_options(options)
        ValueType.from_option(options.get("type"))
        resolve_serializer(options.get("serializer"))

        self.options = options
        self.field_name: str | None = None

    def __set_name__(self, owner: type["EncryptedModel"], name: str) -> None:
        """
        Register the attribute's policy when the descriptor is assigned to a class.

        Args:
            owner: The class that owns this descriptor
            name: The name of the descriptor in the class
        """
        self.field_name = name
        policy_registry.define(owner, name, **self.options)

    def __get__(self, instance: "EncryptedModel | None", owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance._vault_controller().read(self.field_name)

    def __set__(self, instance: "EncryptedModel", value: Any) -> None:
        instance._vault_controller().write(self.field_name, value)


T = TypeVar("T", bound="EncryptedModel")


class EncryptedModel(BaseModel):
    """
    Base class for models with transit-encrypted attributes.

    Physical columns, including the ciphertext columns, are ordinary
    pydantic fields. Encrypted attributes are EncryptedField descriptors
    and never appear in model_dump(). Records are decrypted as soon as
    they are created, unless the class is in lazy-decrypt mode.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        ignored_types=(EncryptedField, AttributeProxy),
    )

    # Table (collection) name; defaults to the snake_case class name
    __table_name__: ClassVar[str | None] = None

    # Application name used in default key names; configuration otherwise
    __vault_application__: ClassVar[str | None] = None

    # Defer decryption until each attribute is first read
    __lazy_decrypt__: ClassVar[bool] = False

    # Transit client override for this model; the process default otherwise
    __transit_client__: ClassVar[TransitClient | None] = None

    # Record store override for this model; the process default otherwise
    __record_store__: ClassVar[RecordStore | None] = None

    _vault: AttributeLifecycleController | None = PrivateAttr(default=None)
    _record_key: str | None = PrivateAttr(default=None)

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        cls._check_encrypted_columns()

    @classmethod
    def _check_encrypted_columns(cls) -> None:
        """
        Verify every encrypted attribute has a ciphertext column.

        Raises:
            ConfigurationError: If a ciphertext column is not a model field
        """
        for policy in policy_registry.lookup(cls):
            if policy.encrypted_column not in cls.model_fields:
                raise ConfigurationError(
                    f"{cls.__name__}.{policy.name} is stored in column "
                    f"'{policy.encrypted_column}', which is not a field of the model"
                )
            if policy.name in cls.model_fields:
                raise ConfigurationError(
                    f"{cls.__name__}.{policy.name} cannot be both a field and an encrypted attribute"
                )

    @classmethod
    def table_name(cls) -> str:
        """Get the table (collection) name of the model."""
        return table_name_for(cls)

    @classmethod
    def vault_attribute(cls, attribute_name: str, **options: Any) -> EncryptedField:
        """
        Define an encrypted attribute after the class was created.

        Equivalent to declaring ``attribute_name = EncryptedField(**options)``
        in the class body. Redefining an attribute replaces its policy.

        Args:
            attribute_name: Logical attribute name
            **options: Attribute options, see EncryptedField

        Returns:
            The attribute's descriptor

        Raises:
            ConfigurationError: If the options are invalid
        """
        field = EncryptedField(**options)
        setattr(cls, attribute_name, field)
        field.__set_name__(cls, attribute_name)
        cls._check_encrypted_columns()
        return field

    @classmethod
    def vault_attribute_proxy(
        cls,
        legacy_attribute: str,
        encrypted_attribute: str,
        **options: Any,
    ) -> AttributeProxy:
        """
        Proxy a legacy plaintext column through an encrypted attribute.

        Args:
            legacy_attribute: Name of the existing plaintext column
            encrypted_attribute: Name of the encrypted attribute replacing it
            **options: type, encrypted_attribute_only

        Returns:
            The proxy descriptor

        Raises:
            ConfigurationError: If either attribute does not exist
        """
        if legacy_attribute not in cls.model_fields:
            raise ConfigurationError(f"{cls.__name__} has no column '{legacy_attribute}' to proxy")
        try:
            policy_registry.policy_for(cls, encrypted_attribute)
        except KeyError as e:
            raise ConfigurationError(str(e)) from None

        proxy = AttributeProxy(encrypted_attribute, **options)
        setattr(cls, legacy_attribute, proxy)
        proxy.__set_name__(cls, legacy_attribute)
        return proxy

    @classmethod
    def vault_lazy_decrypt(cls) -> None:
        """Switch the model to lazy decryption."""
        cls.__lazy_decrypt__ = True

    @classmethod
    def is_lazy_decrypt(cls) -> bool:
        return bool(cls.__lazy_decrypt__)

    @classmethod
    def vault_attributes(cls) -> list[str]:
        """Names of the model's encrypted attributes in definition order."""
        return [policy.name for policy in policy_registry.lookup(cls)]

    @classmethod
    def _get_transit_client(cls) -> TransitClient:
        return cls.__transit_client__ or get_transit_client()

    @classmethod
    def _get_record_store(cls) -> RecordStore:
        return cls.__record_store__ or get_record_store()

    def __init__(self, /, **data: Any) -> None:
        """
        Create a record.

        Encrypted attributes may be passed as plaintext keyword arguments;
        they count as assigned, so they are encrypted on the first save.
        """
        encrypted = set(type(self).vault_attributes())
        plaintext = {name: data.pop(name) for name in list(data) if name in encrypted}

        # Same as BaseModel.__init__, with the assigned plaintext in the context
        # so it is in place before load runs
        __tracebackhide__ = True
        self.__pydantic_validator__.validate_python(
            data, self_instance=self, context={_ASSIGNED: plaintext}
        )

    def model_post_init(self, context: Any, /) -> None:
        """After-materialize hook: decrypt the record's attributes."""
        super().model_post_init(context)

        self._vault = AttributeLifecycleController(
            self,
            policy_registry.lookup(type(self)),
            type(self)._get_transit_client(),
            lazy=type(self).is_lazy_decrypt(),
        )

        if not isinstance(context, dict):
            context = {}

        # Assigned values are dirty, so load leaves them alone
        for name, value in context.get(_ASSIGNED, {}).items():
            self._vault.write(name, value)

        if context.get(_SKIP_LOAD):
            return
        self._vault.load()

    def __copy__(self):
        copied = super().__copy__()
        if self._vault is not None:
            copied._vault = self._vault.bind(copied)
        return copied

    def __deepcopy__(self, memo: dict[int, Any] | None = None):
        copied = super().__deepcopy__(memo)
        if copied._vault is not None:
            copied._vault.record = copied
        return copied

    def __eq__(self, other: Any) -> bool:
        """
        Compare columns, record keys and pending plaintext.

        Plaintext that is not pending derives from the ciphertext columns,
        so equal columns plus equal pending values mean equal records.
        """
        if not isinstance(other, EncryptedModel):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.__dict__ == other.__dict__
            and self._record_key == other._record_key
            and self._pending_values() == other._pending_values()
        )

    def _pending_values(self) -> dict[str, Any]:
        return {name: new for name, (_, new) in self._vault_controller().changes().items()}

    def __setattr__(self, name: str, value: Any) -> None:
        # Encrypted attributes and proxies are not pydantic fields
        attribute = getattr(type(self), name, None)
        if isinstance(attribute, (EncryptedField, AttributeProxy)):
            attribute.__set__(self, value)
            return
        super().__setattr__(name, value)

    def _vault_controller(self) -> AttributeLifecycleController:
        if self._vault is None:
            raise RuntimeError(f"{type(self).__name__} was not initialized")
        return self._vault

    def read_column(self, column: str) -> Any:
        """
        Read a physical column, bypassing encrypted attributes and proxies.

        Args:
            column: Column (field) name

        Returns:
            The stored column value
        """
        if column not in type(self).model_fields:
            raise AttributeError(f"{type(self).__name__} has no column '{column}'")
        return self.__dict__.get(column)

    def write_column(self, column: str, value: Any) -> None:
        """
        Write a physical column, bypassing encrypted attributes and proxies.

        Args:
            column: Column (field) name
            value: Value to store
        """
        if column not in type(self).model_fields:
            raise AttributeError(f"{type(self).__name__} has no column '{column}'")
        BaseModel.__setattr__(self, column, value)

    def ciphertext(self, attribute_name: str) -> str | None:
        """Get the stored ciphertext of an encrypted attribute."""
        policy = policy_registry.policy_for(type(self), attribute_name)
        return self.read_column(policy.encrypted_column)

    @property
    def record_key(self) -> str | None:
        """Key of the record in its store, None until first saved."""
        return self._record_key

    @property
    def is_persisted(self) -> bool:
        return self._record_key is not None

    def attribute_changed(self, name: str) -> bool:
        """Whether an encrypted attribute was assigned since the last load or save."""
        return self._vault_controller().changed(name)

    def attribute_was(self, name: str) -> Any:
        """Value of an encrypted attribute as last loaded or saved."""
        return self._vault_controller().was(name)

    def attribute_change(self, name: str) -> tuple[Any, Any] | None:
        """The (previous, current) pair of a changed encrypted attribute."""
        return self._vault_controller().change(name)

    def attribute_present(self, name: str) -> bool:
        """Whether an encrypted attribute holds a non-empty value."""
        value = self._vault_controller().read(name)
        return value is not None and value != ""

    def attribute_state(self, name: str) -> AttributeState:
        return self._vault_controller().state(name)

    def changed_attributes(self) -> dict[str, tuple[Any, Any]]:
        """Every pending change to encrypted attributes."""
        return self._vault_controller().changes()

    def get_record_data(self) -> dict[str, object]:
        """
        Get the document stored for this record.

        Returns:
            Column values only; plaintext of encrypted attributes is never included
        """
        return self.model_dump(mode="json")

    def _before_save(self) -> dict[str, object]:
        """Before-persist hook: encrypt dirty attributes into their columns."""
        ciphertexts = self._vault_controller().encrypt_dirty()

        previous = {column: self.read_column(column) for column in ciphertexts}
        for column, value in ciphertexts.items():
            self.write_column(column, value)
        return previous

    def save(self, store: RecordStore | None = None) -> str:
        """
        Save the record.

        Only attributes assigned since the last load or save are sent to
        the transit engine. If encryption or the store fails, the
        ciphertext columns keep their previous values and the attributes
        stay dirty.

        Args:
            store: Record store to save to; the model's default otherwise

        Returns:
            Key of the saved record

        Raises:
            CryptoServiceError: If the transit engine fails
            SerializationError: If a serializer fails
            StoreError: If the record store fails
        """
        store = store or type(self)._get_record_store()
        collection = type(self).table_name()

        previous = self._before_save()

        committed = False
        try:
            document = self.get_record_data()
            if self._record_key is None:
                key = store.insert(collection, document)
            else:
                key = self._record_key
                store.replace(collection, key, document)
            committed = True
        finally:
            if not committed:
                for column, value in previous.items():
                    self.write_column(column, value)

        self._record_key = key
        self._vault_controller().changes_applied()
        logger.debug("Saved %s/%s", collection, key)
        return key

    def reload(self, store: RecordStore | None = None) -> None:
        """
        Reload the record's columns and re-decrypt its attributes.

        Unsaved assignments are discarded.

        Raises:
            StoreError: If the record was never saved or cannot be read
            CryptoServiceError: If the transit engine fails
        """
        if self._record_key is None:
            raise StoreError(f"Cannot reload an unsaved {type(self).__name__}")

        store = store or type(self)._get_record_store()
        document = store.get(type(self).table_name(), self._record_key)

        fresh = type(self).model_validate(document, context={_SKIP_LOAD: True})
        for column in type(self).model_fields:
            self.write_column(column, fresh.__dict__.get(column))

        self._after_reload()

    def _after_reload(self) -> None:
        """After-reload hook: drop cached plaintext and decrypt again."""
        self._vault_controller().reload()

    def delete(self, store: RecordStore | None = None) -> None:
        """Delete the record from its store."""
        if self._record_key is None:
            raise StoreError(f"Cannot delete an unsaved {type(self).__name__}")

        store = store or type(self)._get_record_store()
        store.delete(type(self).table_name(), self._record_key)
        self._record_key = None

    @classmethod
    def from_record(cls: type[T], document: dict[str, object], key: str | None = None) -> T:
        """
        Materialize a record from a stored document.

        Args:
            document: Stored column values, optionally with a "_key" entry
            key: Record key, when not part of the document

        Returns:
            A new model instance with its attributes decrypted (unless lazy)
        """
        data = dict(document)
        key = key or data.pop("_key", None)

        instance = cls.model_validate(data)
        instance._record_key = key
        return instance

    @classmethod
    def get(cls: type[T], key: str, store: RecordStore | None = None) -> T:
        """
        Load a record by key.

        Raises:
            RecordNotFound: If no record has that key
        """
        store = store or cls._get_record_store()
        return cls.from_record(store.get(cls.table_name(), key), key=key)

    @classmethod
    def encrypt_value(cls, attribute_name: str, value: Any) -> str | None:
        """
        Encrypt a value the way an attribute would be encrypted.

        Useful for building queries against convergent ciphertext columns.
        """
        policy = policy_registry.policy_for(cls, attribute_name)
        plaintext = encode_value(policy.serializer, policy.value_type.cast(value))
        return cls._get_transit_client().encrypt(policy.path, policy.key, plaintext, policy.convergent)

    @classmethod
    def find_by_vault_attribute(
        cls: type[T],
        attribute_name: str,
        value: Any,
        store: RecordStore | None = None,
        limit: int = 50,
    ) -> list[T]:
        """
        Find records whose convergent attribute equals a value.

        Raises:
            ConfigurationError: If the attribute is not convergent
        """
        policy = policy_registry.policy_for(cls, attribute_name)
        if not policy.convergent:
            raise ConfigurationError(
                f"{cls.__name__}.{attribute_name} is not convergent and cannot be searched"
            )

        store = store or cls._get_record_store()
        ciphertext = cls.encrypt_value(attribute_name, value)
        documents = store.find(cls.table_name(), {policy.encrypted_column: ciphertext}, limit)
        return [cls.from_record(document) for document in documents]

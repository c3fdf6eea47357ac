"""
Legacy column proxies.

A proxy lets an existing plaintext column be migrated to an encrypted
attribute without changing the code that uses the column's name: reads
prefer the encrypted attribute and writes go to it.
"""

from typing import Any

from ..registry.value_types import ValueType


class AttributeProxy:
    """
    Descriptor routing a legacy plaintext column through an encrypted attribute.

    Reading returns the encrypted attribute's value, falling back to the
    legacy column while the encrypted attribute is still empty. Writing
    assigns the encrypted attribute and, unless encrypted_attribute_only
    is set, the legacy column as well.

    Example:
        class Person(EncryptedModel):
            ssn: str | None = None
            ssn_encrypted: str | None = None
            ssn_v2 = EncryptedField()

        Person.vault_attribute_proxy("ssn", "ssn_v2")
    """

    def __init__(
        self,
        encrypted_attribute: str,
        *,
        type: ValueType | str | None = ValueType.STRING,
        encrypted_attribute_only: bool = False,
    ) -> None:
        """
        Initialize an AttributeProxy.

        Args:
            encrypted_attribute: Name of the encrypted attribute to route to
            type: Cast applied to assigned values
            encrypted_attribute_only: Stop writing the legacy column

        Raises:
            ConfigurationError: If the type is unknown
        """
        self.encrypted_attribute = encrypted_attribute
        self.value_type = ValueType.from_option(type)
        self.encrypted_attribute_only = encrypted_attribute_only
        self.name: str | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self

        value = getattr(instance, self.encrypted_attribute)
        if self.encrypted_attribute_only or value is not None:
            return value

        # Not migrated yet
        return instance.read_column(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        value = self.value_type.cast(value)

        if not self.encrypted_attribute_only:
            instance.write_column(self.name, value)

        setattr(instance, self.encrypted_attribute, value)

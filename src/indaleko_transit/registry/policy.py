"""
Encryption policy registry.

This module maps each entity type's encrypted attributes to the policy
used to encrypt them: where the ciphertext lives, which transit key and
mount encrypt it, whether encryption is convergent and how values are
serialized. Policies are defined while model classes are created and are
only read afterwards.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

from ..config import TransitConfig
from ..errors import ConfigurationError
from ..serializers import CustomSerializer, Serializer, resolve_serializer, serializer_for
from .value_types import ValueType


logger = logging.getLogger(__name__)


# Options accepted by define()
POLICY_OPTIONS = frozenset({
    "encrypted_column",
    "path",
    "key",
    "convergent",
    "serializer",
    "encode",
    "decode",
    "type",
    "force_dirty",
})


@dataclass(frozen=True)
class AttributePolicy:
    """
    Encryption policy for one logical attribute of one entity type.

    A policy with convergent set produces the same ciphertext for the
    same plaintext, which allows equality lookups on the ciphertext
    column at the cost of revealing duplicates.
    """

    # Logical attribute name exposed on the model
    name: str

    # Physical column holding the ciphertext
    encrypted_column: str

    # Transit mount path
    path: str

    # Transit key name
    key: str

    convergent: bool = False

    # Encode/decode strategy; None means plaintext is stored as-is
    serializer: Serializer | None = None

    # Cast applied to assigned values
    value_type: ValueType = ValueType.VALUE

    # Mark the attribute dirty on every assignment, even of an equal value
    force_dirty: bool = True


def default_key_id(app_name: str, table_name: str, attribute_name: str) -> str:
    """
    Build the default transit key name for an attribute.

    Args:
        app_name: Application name
        table_name: Table (collection) name of the entity type
        attribute_name: Logical attribute name

    Returns:
        The key name, "<app>_<table>_<attribute>"
    """
    return f"{app_name}_{table_name}_{attribute_name}"


def table_name_for(entity_type: type) -> str:
    """
    Get the table name of an entity type.

    Uses ``__table_name__`` when set, otherwise the
    snake_case form of the class name.
    """
    explicit = getattr(entity_type, "__table_name__", None)
    if explicit:
        return str(explicit)
    return re.sub(r"(?<!^)(?=[A-Z])", "_", entity_type.__name__).lower()


def validate_options(options: dict[str, Any]) -> None:
    """
    Validate attribute options.

    Args:
        options: Options given for an encrypted attribute

    Raises:
        ConfigurationError: If options are unknown or contradictory
    """
    unknown = set(options) - POLICY_OPTIONS
    if unknown:
        raise ConfigurationError(f"Unknown encrypted attribute options: {sorted(unknown)}")

    has_encode = options.get("encode") is not None
    has_decode = options.get("decode") is not None

    if options.get("serializer") is not None and (has_encode or has_decode):
        raise ConfigurationError(
            "Cannot use a custom encoder/decoder if a `serializer` is specified!"
        )

    if has_encode and not has_decode:
        raise ConfigurationError("Cannot specify `encode` without specifying `decode` as well!")

    if has_decode and not has_encode:
        raise ConfigurationError("Cannot specify `decode` without specifying `encode` as well!")

    for option in ("encode", "decode"):
        if options.get(option) is not None and not callable(options[option]):
            raise ConfigurationError(f"`{option}` must be callable")


def build_policy(
    entity_type: type,
    attribute_name: str,
    options: dict[str, Any],
    application: str | None = None,
) -> AttributePolicy:
    """
    Build the policy for an attribute, filling in defaults.

    The application name in the default key comes from the application
    argument, then the type's ``__vault_application__``, then configuration.

    Args:
        entity_type: The model class owning the attribute
        attribute_name: Logical attribute name
        options: Attribute options
        application: Application name used in the default key

    Returns:
        The attribute policy

    Raises:
        ConfigurationError: If the options are invalid
    """
    validate_options(options)

    value_type = ValueType.from_option(options.get("type"))

    # Custom pair wins, then an explicit serializer, then the type's default
    if options.get("encode") is not None:
        serializer = CustomSerializer(options["encode"], options["decode"])
    elif options.get("serializer") is not None:
        serializer = resolve_serializer(options["serializer"])
    elif value_type.default_serializer:
        serializer = serializer_for(value_type.default_serializer)
    else:
        serializer = None

    application = (
        application
        or getattr(entity_type, "__vault_application__", None)
        or TransitConfig.get_application()
    )
    key = options.get("key") or default_key_id(application, table_name_for(entity_type), attribute_name)

    return AttributePolicy(
        name=attribute_name,
        encrypted_column=options.get("encrypted_column") or f"{attribute_name}_encrypted",
        path=options.get("path") or TransitConfig.get_transit_path(),
        key=key,
        convergent=bool(options.get("convergent", False)),
        serializer=serializer,
        value_type=value_type,
        force_dirty=bool(options.get("force_dirty", True)),
    )


class PolicyRegistry:
    """
    Registry of attribute policies per entity type.

    Definitions happen while classes are created, before any instance
    exists, so reads after that need no locking.
    """

    def __init__(self) -> None:
        self._policies: dict[type, dict[str, AttributePolicy]] = {}

    def define(
        self,
        entity_type: type,
        attribute_name: str,
        *,
        application: str | None = None,
        **options: Any,
    ) -> AttributePolicy:
        """
        Define (or redefine) an encrypted attribute.

        Args:
            entity_type: The model class owning the attribute
            attribute_name: Logical attribute name
            application: Application name used in the default key
            **options: Attribute options, see POLICY_OPTIONS

        Returns:
            The stored policy

        Raises:
            ConfigurationError: If the options are invalid
        """
        policy = build_policy(entity_type, attribute_name, options, application)

        policies = self._policies.setdefault(entity_type, {})
        if attribute_name in policies:
            logger.debug("Redefining encrypted attribute %s.%s", entity_type.__name__, attribute_name)
        policies[attribute_name] = policy

        logger.debug(
            "Defined encrypted attribute %s.%s (column=%s, path=%s, key=%s, convergent=%s)",
            entity_type.__name__, attribute_name, policy.encrypted_column,
            policy.path, policy.key, policy.convergent,
        )
        return policy

    def lookup(self, entity_type: type) -> list[AttributePolicy]:
        """
        Get the policies of an entity type in definition order.

        Policies defined on base classes come first; a subclass
        redefining an attribute overrides the inherited policy.

        Args:
            entity_type: The model class

        Returns:
            List of policies, empty for types without encrypted attributes
        """
        merged: dict[str, AttributePolicy] = {}
        for klass in reversed(entity_type.__mro__):
            merged.update(self._policies.get(klass, {}))
        return list(merged.values())

    def policy_for(self, entity_type: type, attribute_name: str) -> AttributePolicy:
        """
        Get the policy of a single attribute.

        Raises:
            KeyError: If the attribute is not encrypted on the type
        """
        for klass in entity_type.__mro__:
            policies = self._policies.get(klass)
            if policies and attribute_name in policies:
                return policies[attribute_name]
        raise KeyError(f"{entity_type.__name__} has no encrypted attribute '{attribute_name}'")

    def clear(self, entity_type: type | None = None) -> None:
        """Forget the policies of one type, or of every type."""
        if entity_type is None:
            self._policies.clear()
        else:
            self._policies.pop(entity_type, None)


# Registry used by EncryptedModel
policy_registry = PolicyRegistry()

"""Domain models used throughout the framework."""

import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from wirebox.factory import ServiceFactory

__all__ = [
    "Identifier",
    "IdentifierKind",
    "identifier_kind",
    "identifier_name",
    "Dependency",
    "LazyDependency",
    "RegistryEntry",
    "ResolutionContext",
]


Identifier = Union[str, type, ServiceFactory]
"""Key used to address a service in a registry.

A string token, a class (used for its identity, not just typing) or a
:class:`~wirebox.factory.ServiceFactory`. A string and a class with the same
name are distinct keys.
"""


class IdentifierKind(enum.Enum):
    TOKEN = "token"
    TYPE = "type"
    FACTORY = "factory"


def identifier_kind(identifier: Any) -> IdentifierKind:
    """Classify an identifier into one of the three supported kinds.

    Raises:
        TypeError: If the identifier is none of a string, a class or a factory.
    """
    if isinstance(identifier, str):
        return IdentifierKind.TOKEN
    if isinstance(identifier, ServiceFactory):
        return IdentifierKind.FACTORY
    if isinstance(identifier, type):
        return IdentifierKind.TYPE
    raise TypeError(
        f"{identifier!r} is not a valid identifier: expected a string, a class or a ServiceFactory"
    )


def identifier_name(identifier: Any) -> str:
    """Human-readable name of an identifier, for log and error messages.

    Example:
        >>> identifier_name("mailer")      # Returns '"mailer"'
        >>> identifier_name(UserService)   # Returns 'UserService'
    """
    if isinstance(identifier, str):
        return f'"{identifier}"'
    if identifier is None:
        return "None"
    try:
        kind = identifier_kind(identifier)
    except TypeError:
        return repr(identifier)
    if kind is IdentifierKind.FACTORY:
        return "ServiceFactory"
    return getattr(identifier, "__name__", "UnknownClass")


@dataclass(frozen=True)
class Dependency:
    """An attribute to be assigned eagerly when its owner is created.

    Attributes:
        property_name: The attribute of the owning service to assign.
        identifier: The identifier to resolve. ``None`` marks a broken reference
            and is reported when the owner is created.
    """

    property_name: str
    identifier: Optional[Identifier]


@dataclass(frozen=True)
class LazyDependency:
    """An attribute to be resolved on first read.

    Attributes:
        property_name: The attribute of the owning service.
        target_type: The identifier to resolve on first read, or ``None`` if the
            attribute is expected to hold a :class:`~wirebox.lazy.LazyService`.
    """

    property_name: str
    target_type: Optional[Identifier]


@dataclass
class RegistryEntry:
    """Mutable per-identifier record held by a registry.

    Attributes:
        boot: Whether the instance's ``boot`` hook should still run.
        instance: The created service, once there is one.
        target: The class or factory to create the service from, until it is created.
        created: Whether ``instance`` has been set, so that falsy services are still cached.
    """

    boot: bool
    instance: Any = None
    target: Any = None
    created: bool = field(default=False)

    @property
    def pending(self) -> bool:
        return self.target is not None and not self.created

    def fulfil(self, instance: Any) -> None:
        self.instance = instance
        self.created = True
        self.target = None


@dataclass(frozen=True)
class ResolutionContext:
    """Identifies the attribute whose resolution triggered a ``get``.

    Used for diagnostic messages only.
    """

    parent_class: str
    property_name: str

    def __str__(self):
        return f"{self.parent_class}.{self.property_name}"

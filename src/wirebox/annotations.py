"""Declaration of injection metadata.

Services declare what they need with ``Annotated`` class attributes, in the
same way providers qualify their parameters::

    @injectable
    class UserService:
        logger: Annotated[Logger, Inject()]
        mailer: Annotated[Mailer, Inject("mailer")]
        cache: Annotated[Cache, Lazy()]

Eager dependencies (``Inject``) are assigned when the registry creates the
service. Lazy dependencies (``Lazy``) are resolved the first time the
attribute is read. The declarations are recorded in a :class:`MetadataStore`,
a side table keyed by class, before any registry exists.
"""

import inspect
import logging
from collections import defaultdict
from typing import Annotated, Any, Optional, get_args, get_origin, get_type_hints

from wirebox.domain import Dependency, LazyDependency
from wirebox.errors import MissingMetadataError
from wirebox.lazy import LazyService

__all__ = [
    "Inject",
    "Lazy",
    "LazyAttribute",
    "LazyAttributeValue",
    "MetadataStore",
    "metadata",
    "injectable",
]

logger = logging.getLogger(__name__)

_DECLARED_TYPE = object()
_MISSING = object()

_LIKELY_CAUSES = (
    "This usually happens when:\n"
    "  1. The dependency class is not properly imported\n"
    "  2. There's a circular import between modules\n"
    "  3. The attribute is annotated with Any, object or a non-class type\n"
)


class Inject:
    """Marks an annotated attribute as an eager dependency.

    Args:
        identifier: The identifier to resolve. Defaults to the declared type.
    """

    def __init__(self, identifier: Any = _DECLARED_TYPE):
        self.identifier = identifier

    def __repr__(self):
        if self.identifier is _DECLARED_TYPE:
            return "Inject()"
        return f"Inject({self.identifier!r})"


class Lazy:
    """Marks an annotated attribute as a lazy dependency.

    Args:
        identifier: The identifier to resolve on first read. Defaults to the
            declared type.
    """

    def __init__(self, identifier: Any = _DECLARED_TYPE):
        if identifier is None:
            raise MissingMetadataError(
                "Lazy(identifier): the identifier argument is None. "
                "Make sure to pass a valid class reference."
            )
        self.identifier = identifier

    def __repr__(self):
        if self.identifier is _DECLARED_TYPE:
            return "Lazy()"
        return f"Lazy({self.identifier!r})"


class LazyAttributeValue(LazyService):
    """Write-once cell the registry stores behind a lazy attribute."""

    pass


class LazyAttribute:
    """Data descriptor serving a lazy attribute.

    Values are kept in the instance ``__dict__``. A :class:`LazyAttributeValue`
    is unwrapped on read; anything else (including a :class:`LazyService`
    assigned by the service itself) is returned unchanged.
    """

    def __init__(self, name: str, default: Any = _MISSING):
        self.name = name
        self.default = default

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        try:
            value = instance.__dict__[self.name]
        except KeyError:
            if self.default is _MISSING:
                raise AttributeError(
                    f"{type(instance).__name__!r} object has no attribute {self.name!r}"
                ) from None
            return self.default
        if isinstance(value, LazyAttributeValue):
            return value.value
        return value

    def __set__(self, instance, value):
        instance.__dict__[self.name] = value

    def __delete__(self, instance):
        try:
            del instance.__dict__[self.name]
        except KeyError:
            raise AttributeError(self.name) from None


class MetadataStore:
    """Side table of injection requirements, keyed by class.

    Declarations are kept in order; a class sees the declarations of its bases
    before its own.
    """

    def __init__(self):
        self._dependencies: dict[type, list[Dependency]] = defaultdict(list)
        self._lazy_dependencies: dict[type, list[LazyDependency]] = defaultdict(list)

    def add_dependency(self, cls: type, property_name: str, identifier: Any):
        """Declare an eager dependency of ``cls``.

        ``identifier`` may be ``None``; the broken reference is reported when
        the registry creates an instance of ``cls``.
        """
        self._dependencies[cls].append(Dependency(property_name, identifier))

    def add_lazy_dependency(
        self, cls: type, property_name: str, target_type: Optional[Any] = None
    ):
        """Declare a lazy dependency of ``cls``.

        When ``target_type`` is given, a :class:`LazyAttribute` is installed on
        ``cls`` so that reads of the attribute resolve the target once.
        """
        self._lazy_dependencies[cls].append(LazyDependency(property_name, target_type))
        if target_type is not None:
            _install_lazy_attribute(cls, property_name)

    def dependencies(self, cls: type) -> list[Dependency]:
        return [
            dependency
            for klass in reversed(cls.__mro__)
            for dependency in self._dependencies.get(klass, ())
        ]

    def lazy_dependencies(self, cls: type) -> list[LazyDependency]:
        return [
            dependency
            for klass in reversed(cls.__mro__)
            for dependency in self._lazy_dependencies.get(klass, ())
        ]


metadata = MetadataStore()
"""Store populated by :func:`injectable` unless another store is given."""


def injectable(cls: Optional[type] = None, *, store: Optional[MetadataStore] = None):
    """Class decorator recording the ``Inject`` and ``Lazy`` declarations of a class.

    Only the class's own annotations are scanned, in declaration order.
    Decorated bases contribute their declarations through the store.

    Args:
        cls: The class to scan (when used as ``@injectable``).
        store: The store to record into. Defaults to :data:`metadata`.

    Raises:
        MissingMetadataError: If an ``Inject()`` attribute has no usable
            declared type, or the annotations cannot be evaluated.
    """

    def decorator(target: type) -> type:
        _declare_from_annotations(target, store or metadata)
        return target

    if cls is not None:
        return decorator(cls)
    return decorator


def _declare_from_annotations(cls: type, store: MetadataStore):
    try:
        own_annotations = inspect.get_annotations(cls)
        hints = get_type_hints(cls, include_extras=True)
    except NameError as e:
        raise MissingMetadataError(
            f"Unable to evaluate the annotations of {cls.__name__}: {e}.\n\n{_LIKELY_CAUSES}"
        ) from e

    for property_name in own_annotations:
        annotation = hints.get(property_name)
        if get_origin(annotation) is not Annotated:
            continue
        declared_type, *extras = get_args(annotation)
        marker = _find_marker(extras)
        if isinstance(marker, Inject):
            store.add_dependency(
                cls, property_name, _eager_identifier(cls, property_name, declared_type, marker)
            )
        elif isinstance(marker, Lazy):
            store.add_lazy_dependency(
                cls, property_name, _lazy_identifier(cls, property_name, declared_type, marker)
            )


def _find_marker(extras: list[Any]):
    for extra in extras:
        if extra is Inject or extra is Lazy:
            return extra()
        if isinstance(extra, (Inject, Lazy)):
            return extra
    return None


def _eager_identifier(cls, property_name, declared_type, marker: Inject):
    if marker.identifier is not _DECLARED_TYPE:
        return marker.identifier
    if not _is_usable_type(declared_type):
        raise MissingMetadataError(
            f'Inject() on "{property_name}" in {cls.__name__}: '
            f"unable to resolve the service type from the declared type {declared_type!r}.\n\n"
            f"{_LIKELY_CAUSES}\n"
            "Solutions:\n"
            '  - Use Inject("service_id") with a string identifier instead\n'
            "  - Use Inject(ServiceClass) to name the class explicitly"
        )
    return declared_type


def _lazy_identifier(cls, property_name, declared_type, marker: Lazy):
    if marker.identifier is not _DECLARED_TYPE:
        return marker.identifier
    if declared_type is LazyService or get_origin(declared_type) is LazyService:
        return None
    if not _is_usable_type(declared_type):
        logger.warning(
            'Lazy() on "%s" in %s: unable to resolve the service type from the declared type %r. '
            "Consider using Lazy(ServiceClass) instead for explicit type specification.",
            property_name,
            cls.__name__,
            declared_type,
        )
        return None
    return declared_type


def _is_usable_type(declared_type: Any) -> bool:
    return (
        isinstance(declared_type, type)
        and declared_type is not object
        and declared_type is not Any
    )


def _install_lazy_attribute(cls: type, property_name: str):
    existing = cls.__dict__.get(property_name, _MISSING)
    if isinstance(existing, LazyAttribute):
        return
    setattr(cls, property_name, LazyAttribute(property_name, existing))

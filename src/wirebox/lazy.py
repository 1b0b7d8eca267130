"""Deferred service resolution.

A :class:`LazyService` binds an identifier (and an optional transform) and
resolves it through its registry on first read of :attr:`LazyService.value`.
Handles are usually assigned in a service's ``__init__`` to an attribute
declared with ``Lazy()``; the registry binds itself to them when it creates
the owning service. Holders built outside the registry are bound with
:meth:`LazyService.boot`.
"""

from typing import Any, Callable, Generic, Optional, TypeVar

from wirebox.domain import identifier_name
from wirebox.errors import LazyResolutionError

__all__ = ["LazyService"]

T = TypeVar("T")


class LazyService(Generic[T]):
    """Lazy-loading wrapper for a service with an optional transformation.

    Attributes:
        type: The identifier resolved on first read.

    Example:
        >>> class ReportJob:
        ...     mailer: Annotated[LazyService[Mailer], Lazy()]
        ...
        ...     def __init__(self):
        ...         self.mailer = LazyService(Mailer, lambda m: m.with_sender("reports"))
    """

    def __init__(self, type: Any, transform: Optional[Callable[[Any], T]] = None):
        self.type = type
        self._transform = transform
        self._registry = None
        self._value: Optional[T] = None

    def inject(self, registry: Any) -> None:
        """Bind the registry used to resolve :attr:`type`."""
        self._registry = registry

    @property
    def value(self) -> T:
        """The resolved service, resolved and cached on first access.

        Raises:
            LazyResolutionError: If the handle is not bound to a registry, the
                registry returns a falsy service or the transform returns a
                falsy result.
        """
        if self._value is not None:
            return self._value

        name = identifier_name(self.type)
        if self._registry is None:
            raise LazyResolutionError(
                f"Unable to resolve service: {name}. The lazy handle is not bound to a registry; "
                "create its owner with ServiceRegistry.get or call LazyService.boot on it."
            )

        service = self._registry.get(self.type)
        if not service:
            raise LazyResolutionError(f"Unable to resolve service: {name}")

        result = self._transform(service) if self._transform else service
        if not result:
            raise LazyResolutionError(f"Invalid transform: {name}")

        self._value = result
        return result

    @property
    def resolved(self) -> bool:
        return self._value is not None

    @staticmethod
    def boot(registry: Any, holder: Any) -> Any:
        """Bind ``registry`` to every :class:`LazyService` held in ``holder``'s attributes.

        Args:
            registry: The registry the handles should resolve through.
            holder: Any object; its instance attributes are scanned.

        Returns:
            ``holder``, for chaining.
        """
        for value in list(vars(holder).values()):
            if isinstance(value, LazyService):
                value.inject(registry)
        return holder

    def __repr__(self):
        state = "resolved" if self.resolved else "pending"
        return f"LazyService({identifier_name(self.type)}, {state})"

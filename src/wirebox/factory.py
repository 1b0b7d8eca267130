"""Factories for services that need more than default construction."""

from typing import Any, Callable, Generic, TypeVar

__all__ = ["ServiceFactory"]

T = TypeVar("T")


class ServiceFactory(Generic[T]):
    """Creates a service with custom initialisation logic.

    The wrapped function receives the registry, may pull its own dependencies
    from it with ``registry.get`` and returns a ``(service_class, service)``
    pair. The class is used to look up the injection metadata of the created
    service. The factory object itself is a valid identifier.

    Example:
        >>> connection_factory = ServiceFactory(
        ...     lambda registry: (Connection, Connection(registry.get(Settings).url))
        ... )
        >>> registry.register_mapped(Connection, connection_factory)
    """

    def __init__(self, factory: Callable[[Any], tuple[type[T], T]]):
        self._factory = factory

    def create(self, registry: Any) -> tuple[type[T], T]:
        """Create a service instance using the factory function.

        Args:
            registry: The :class:`~wirebox.registry.ServiceRegistry` creating the service.

        Returns:
            A ``(service_class, service)`` tuple.
        """
        return self._factory(registry)

    def __repr__(self):
        name = getattr(self._factory, "__qualname__", repr(self._factory))
        return f"ServiceFactory({name})"

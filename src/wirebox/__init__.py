"""Wirebox dependency injection runtime.

Wirebox is a small service registry that creates, caches and wires together
singleton services on demand. Every identifier maps to exactly one long-lived
instance for the life of the registry; there are no scoped lifetimes and no
ambient global registry, so callers hold the registry they created.

Key Features:
    - Attribute injection declared with ``Annotated[T, Inject()]``
    - Lazy attributes and ``LazyService`` handles resolved on first read
    - Factories for construction that needs registry-resolved inputs
    - Remapping of abstract classes to concrete ones named in configuration
    - Cooperative asynchronous ``boot`` hooks, run once per service

Basic Usage:
    >>> from wirebox.annotations import Inject, injectable
    >>> from wirebox.registry import ServiceRegistry
    >>>
    >>> @injectable
    >>> class UserService:
    ...     logger: Annotated[Logger, Inject()]
    >>>
    >>> registry = ServiceRegistry()
    >>> registry.register_self(UserService)
    >>> await registry.boot()
    >>> users = registry.get(UserService)

The framework consists of several core modules:
    - registry: The service registry and its boot orchestration
    - annotations: Declaration of eager and lazy dependencies
    - lazy: Deferred resolution handles
    - factory: Custom service factories
    - concrete: Concrete-class resolution from configuration
    - config: Key/value configuration lookup
    - domain: Core domain models (identifiers, dependencies, registry entries)
    - errors: Framework-specific exceptions
"""

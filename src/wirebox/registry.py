"""The service registry: creation, caching and wiring of singleton services.

A :class:`ServiceRegistry` maps identifiers (string tokens, classes or
:class:`~wirebox.factory.ServiceFactory` objects) to exactly one long-lived
instance each. Instances are created on first access, or supplied up front
with :meth:`ServiceRegistry.set`, and have their declared dependencies
injected once, when they are created. :meth:`ServiceRegistry.boot` then runs
the optional ``boot`` hook of every service, awaiting the asynchronous ones.

Example:
    >>> registry = ServiceRegistry()
    >>> registry.set(Logger, StubLogger())
    >>> registry.register_self(UserService)
    >>> await registry.boot()
    >>> registry.get(UserService).logger
"""

import asyncio
import inspect
import itertools
import logging
import sys
from typing import Any, Optional, Protocol, TypeVar, overload

from wirebox.annotations import LazyAttributeValue, MetadataStore, metadata
from wirebox.concrete import ConcreteClassResolver, has_concrete_class_config
from wirebox.config import Config
from wirebox.domain import (
    IdentifierKind,
    RegistryEntry,
    ResolutionContext,
    identifier_kind,
    identifier_name,
)
from wirebox.errors import LifecycleError, MissingMetadataError, UnresolvedIdentifierError
from wirebox.lazy import LazyService

__all__ = ["RegistryLogger", "ServiceRegistry", "console_logger", "create_service"]

T = TypeVar("T")

_ALL = object()
_MISSING = object()

_LIKELY_CAUSES = (
    "This usually happens when:\n"
    "  1. The dependency class is not properly imported\n"
    "  2. There's a circular import between modules\n"
    "  3. The dependency was declared with Inject(name) while name was still None"
)


CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class RegistryLogger(Protocol):
    """Sink for the registry's diagnostic messages. A :class:`logging.Logger` qualifies.

    Sinks that name the warning method ``warn`` rather than ``warning`` (like
    ``console`` in JavaScript) are accepted too.
    """

    def info(self, message: str) -> None: ...

    def debug(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...


class ServiceRegistry:
    """Identity map that creates and returns service singletons.

    Args:
        debug: Log every resolution step, indented by resolution depth.
        logging_enabled: Log service lifecycle events (registration, creation, boot).
        logger: Where messages go. Defaults to :func:`console_logger`, which
            writes to standard error.
        config: Configuration service used to resolve concrete classes.
            Defaults to an environment-only :class:`~wirebox.config.Config`.
        concrete_class_resolver: Overrides the resolver built from ``config``.
        store: Where injection metadata is read from. Defaults to
            :data:`wirebox.annotations.metadata`.
    """

    is_service_registry = True

    def __init__(
        self,
        *,
        debug: bool = False,
        logging_enabled: bool = False,
        logger: Optional[RegistryLogger] = None,
        config: Optional[Any] = None,
        concrete_class_resolver: Optional[ConcreteClassResolver] = None,
        store: Optional[MetadataStore] = None,
    ):
        self._entries: dict[Any, RegistryEntry] = {}
        self._initialized = False

        self._debug = debug
        self._logging_enabled = logging_enabled
        self._logger = logger if logger is not None else console_logger()
        self._concrete_class_resolver = concrete_class_resolver or ConcreteClassResolver(
            config if config is not None else Config()
        )
        self._store = store or metadata

        self._resolution_stack: list[str] = []

    @property
    def initialized(self) -> bool:
        """Whether a global :meth:`boot` has completed."""
        return self._initialized

    @property
    def resolution_stack(self) -> tuple[str, ...]:
        """Names of the identifiers currently being resolved, outermost first."""
        return tuple(self._resolution_stack)

    def __contains__(self, identifier: Any) -> bool:
        return identifier in self._entries

    async def boot(self, identifier: Any = _ALL) -> None:
        """Call the ``boot`` method of each service, if it has one.

        Services are booted at most once. Without an identifier, every
        registered service is created if needed and booted concurrently;
        the registry is then marked as initialized. A failing hook does not
        stop the others: all of them are awaited before the first error is
        raised, and the registry is not marked as initialized.

        Args:
            identifier: Boot only this service.

        Raises:
            UnresolvedIdentifierError: If ``identifier`` is not registered.
            Exception: The first error raised by a ``boot`` hook.
        """
        if identifier is not _ALL:
            name = identifier_name(identifier)
            self._log_info(f"Booting service: {name}")
            entry = self._entries.get(identifier)
            if entry is None:
                raise UnresolvedIdentifierError(
                    f"No service was found with the identifier {name}."
                )
            if entry.pending:
                self._log_debug(f"Instantiating {name} before boot")
                self.get(identifier)
            pending_boot = self._boot_entry(entry)
            if pending_boot is not None:
                await pending_boot
            self._log_debug(f"Boot completed for {name}")
            return

        self._log_info("Booting all registered services...")
        identifiers = list(self._entries)
        index = 0
        failures = []
        # Hooks may create services; those are booted in a further round.
        while index < len(identifiers):
            tasks = []
            try:
                while index < len(identifiers):
                    key = identifiers[index]
                    index += 1
                    entry = self._entries[key]
                    if entry.pending:
                        self._log_debug(f"Instantiating {identifier_name(key)} before boot")
                        self.get(key)
                    pending_boot = self._boot_entry(entry)
                    if pending_boot is not None:
                        tasks.append(asyncio.ensure_future(pending_boot))
                    self._extend_identifiers(identifiers)
            finally:
                # Every launched hook is joined, even if creating a later service failed.
                results = await asyncio.gather(*tasks, return_exceptions=True)
            failures.extend(result for result in results if isinstance(result, BaseException))
            self._extend_identifiers(identifiers)

        if failures:
            raise failures[0]

        self._initialized = True
        self._log_info(f"Boot completed. {len(self._entries)} services initialized.")

    def _extend_identifiers(self, identifiers: list):
        """Append identifiers registered since ``identifiers`` was last extended."""
        if len(self._entries) > len(identifiers):
            identifiers.extend(itertools.islice(self._entries, len(identifiers), None))

    def register_self(self, cls: type, *, init: bool = False, boot: bool = True) -> "ServiceRegistry":
        """Register a class under its own identity.

        Args:
            cls: The service class.
            init: Create the service now instead of on first access.
            boot: Whether :meth:`boot` should run the service's ``boot`` hook.

        Returns:
            The registry.
        """
        return self.register_mapped(cls, cls, init=init, boot=boot)

    def register_mapped(
        self, identifier: Any, target: Any, *, init: bool = False, boot: bool = True
    ) -> "ServiceRegistry":
        """Register a class or factory under another identifier.

        Args:
            identifier: The identifier callers will ``get``.
            target: The class or :class:`~wirebox.factory.ServiceFactory` that creates the service.
            init: Create the service now instead of on first access.
            boot: Whether :meth:`boot` should run the service's ``boot`` hook.
                Ignored when ``init`` is true.

        Returns:
            The registry.
        """
        name = identifier_name(identifier)
        target_name = identifier_name(target)

        if init:
            self._log_info(f"Registering {name} -> {target_name} (immediate initialization)")
            service = self.get(target)
            # Boot eligibility was settled by the creation path.
            self._entries[identifier] = _created_entry(service, boot=False)
            self._log_debug(f"{name} instantiated immediately")
        else:
            self._log_info(f"Registering {name} -> {target_name} (lazy, boot={boot})")
            self._entries[identifier] = RegistryEntry(boot=boot, target=target)

        return self

    def set(self, identifier: Any, service: Any, *, boot: bool = False) -> "ServiceRegistry":
        """Add an already-created service (or a mock), replacing any existing entry.

        Args:
            identifier: The service ID or the service class.
            service: The service object.
            boot: Whether :meth:`boot` should run the service's ``boot`` hook.

        Returns:
            The registry.
        """
        self._log_info(
            f"Setting {identifier_name(identifier)} = {type(service).__name__} (boot={boot})"
        )
        self._entries[identifier] = _created_entry(service, boot=boot)
        return self

    @overload
    def get(self, identifier: type[T], context: Optional[ResolutionContext] = None) -> T: ...

    @overload
    def get(self, identifier: Any, context: Optional[ResolutionContext] = None) -> Any: ...

    def get(self, identifier, context=None):
        """Get (and create if necessary) the service singleton.

        Args:
            identifier: The service ID, the service class or a factory.
            context: The attribute that requires the service, for error messages.

        Returns:
            The service instance.

        Raises:
            UnresolvedIdentifierError: If ``identifier`` is ``None``, or is a
                string with no registered service.
            MissingMetadataError: If a dependency of a created service has no identifier.
            LifecycleError: If a service created after :meth:`boot` has an
                asynchronous ``boot`` hook.
            ConfigurationError: If a concrete class cannot be resolved from configuration.
        """
        if identifier is None:
            context_message = (
                f' while resolving dependency "{context.property_name}" in {context.parent_class}'
                if context
                else ""
            )
            raise UnresolvedIdentifierError(
                f"Cannot resolve service: identifier is None{context_message}.\n{_LIKELY_CAUSES}"
            )

        name = identifier_name(identifier)
        self._resolution_stack.append(name)
        if context:
            self._log_debug(f"Resolving {name} (requested by {context})")
        else:
            self._log_debug(f"Resolving {name}")

        try:
            return self._resolve(identifier, name)
        finally:
            self._resolution_stack.pop()

    def _resolve(self, identifier: Any, name: str) -> Any:
        if identifier is ServiceRegistry or getattr(identifier, "is_service_registry", False) is True:
            self._log_debug("Returning ServiceRegistry instance")
            return self

        entry = self._entries.get(identifier)
        if entry is not None:
            if entry.pending:
                self._log_info(f"Creating {name} (lazy initialization triggered)")
                self._create_pending(entry, name)
                self._log_debug(f"{name} ready")
            else:
                self._log_debug(f"{name} found in cache")
            return entry.instance

        kind = identifier_kind(identifier)
        if kind is IdentifierKind.TOKEN:
            raise UnresolvedIdentifierError(f"No service was found with the identifier {name}.")

        if kind is IdentifierKind.TYPE and has_concrete_class_config(identifier):
            self._log_debug(f"{name} has concrete_class_config_path, resolving from config")
            return self.get(self._concrete_class_resolver.resolve(identifier))

        self._log_info(f"Creating {name} (first access)")
        service_class, service = self._instantiate(identifier)
        self._log_debug(f"Injecting dependencies into {name}")
        self.inject_dependencies(service_class, service)

        # The identifier may be a factory or a class.
        self._entries[identifier] = _created_entry(service, boot=True)
        self._log_debug(f"{name} ready and cached")
        return service

    def _create_pending(self, entry: RegistryEntry, name: str):
        service_class, service = self._instantiate(entry.target)
        entry.fulfil(service)
        self._log_debug(f"Injecting dependencies into {name}")
        self.inject_dependencies(service_class, service)

        hook = _boot_hook(service)
        if self._initialized and entry.boot and hook is not None:
            self._log_debug(f"Executing boot() for {name}")
            result = hook()
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise LifecycleError(
                    f"Lazy initialized services must not have async 'boot' hooks: {name}"
                )
            entry.boot = False

    def _instantiate(self, target: Any) -> tuple[type, Any]:
        if identifier_kind(target) is IdentifierKind.FACTORY:
            self._log_debug("Invoking ServiceFactory.create()")
            return target.create(self)
        self._log_debug(f"Instantiating new {identifier_name(target)}()")
        return target, target()

    def inject_dependencies(self, service_class: type, service: Any) -> None:
        """Assign the declared dependencies of ``service_class`` to ``service``.

        Eager dependencies are resolved now. Lazy dependencies get a bound
        :class:`~wirebox.lazy.LazyService`: either the one the service already
        holds, or a cell resolving the declared type on first read.

        Raises:
            MissingMetadataError: If an eager dependency has no identifier.
        """
        class_name = getattr(service_class, "__name__", "UnknownService")

        for dependency in self._store.dependencies(service_class):
            if dependency.identifier is None:
                raise MissingMetadataError(
                    f'Cannot resolve dependency "{dependency.property_name}" in {class_name}: '
                    f"the service type is None.\n{_LIKELY_CAUSES}"
                )
            setattr(
                service,
                dependency.property_name,
                self.get(
                    dependency.identifier,
                    ResolutionContext(class_name, dependency.property_name),
                ),
            )

        for lazy_dependency in self._store.lazy_dependencies(service_class):
            current = _current_value(service, lazy_dependency.property_name)
            if isinstance(current, LazyService):
                # A handle the service assigned itself takes precedence over the declared type.
                current.inject(self)
            elif lazy_dependency.target_type is not None and not current:
                cell = LazyAttributeValue(lazy_dependency.target_type)
                cell.inject(self)
                setattr(service, lazy_dependency.property_name, cell)
            elif lazy_dependency.target_type is None and not current:
                self._log_warning(
                    f'Lazy dependency "{lazy_dependency.property_name}" in {class_name} '
                    "has no service type and holds no LazyService; it was not injected."
                )

    def _boot_entry(self, entry: RegistryEntry):
        """Prepare the entry's boot hook if it is still due.

        The flag is cleared before the hook runs, so a hook calling back into
        :meth:`boot` does not boot its own service twice.

        Returns:
            A coroutine running the hook, or ``None`` if there is nothing to boot.
            Exceptions raised by a synchronous hook surface when it is awaited.
        """
        hook = _boot_hook(entry.instance) if entry.created else None
        if not entry.boot or hook is None:
            return None

        entry.boot = False
        return self._run_boot_hook(hook, type(entry.instance).__name__)

    async def _run_boot_hook(self, hook, name: str):
        self._log_debug(f"Executing boot() for {name}")
        result = hook()
        if inspect.isawaitable(result):
            await result
        self._log_debug(f"boot() completed for {name}")

    def _log_info(self, message: str):
        if self._logging_enabled or self._debug:
            self._logger.info(message)

    def _log_debug(self, message: str):
        if self._debug:
            indent = "  " * len(self._resolution_stack)
            self._logger.debug(f"{indent}{message}")

    def _log_warning(self, message: str):
        if self._logging_enabled or self._debug:
            warn = getattr(self._logger, "warning", None) or self._logger.warn
            warn(message)


class _StderrHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stderr`` is when a record is emitted."""

    def __init__(self):
        logging.Handler.__init__(self)

    @property
    def stream(self):
        return sys.stderr


def console_logger(name: str = "wirebox.registry") -> logging.Logger:
    """Get the logger registries write to by default.

    The logger gets a standard error handler the first time it is requested
    and does not propagate, so messages show up without any logging setup.
    Registries decide themselves which messages to emit, so it accepts all levels.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = _StderrHandler()
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


def _created_entry(service: Any, boot: bool) -> RegistryEntry:
    entry = RegistryEntry(boot=boot)
    entry.fulfil(service)
    return entry


def _current_value(service: Any, property_name: str) -> Any:
    # Read the stored value so that an existing lazy cell is not resolved.
    value = getattr(service, "__dict__", {}).get(property_name, _MISSING)
    if value is _MISSING:
        value = getattr(service, property_name, None)
    return value


def _boot_hook(service: Any):
    hook = getattr(service, "boot", None)
    return hook if callable(hook) else None


def create_service(
    service_class: type[T], dependencies: Optional[dict[str, Any]] = None
) -> T:
    """Create a service in a fresh registry, substituting some of its dependencies.

    Intended for tests: each entry of ``dependencies`` whose key names an eager
    dependency of ``service_class`` is used in place of that dependency.

    Args:
        service_class: The class to create.
        dependencies: Mapping of attribute names to the objects (or mocks) to inject.

    Returns:
        The created service.

    Example:
        >>> service = create_service(UserService, {"logger": StubLogger()})
    """
    registry = ServiceRegistry()

    if dependencies:
        for dependency in metadata.dependencies(service_class):
            substitute = dependencies.get(dependency.property_name)
            if substitute and dependency.identifier is not None:
                registry.set(dependency.identifier, substitute)

    return registry.get(service_class)

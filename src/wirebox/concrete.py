"""Resolution of abstract services to concrete classes named in configuration.

An abstract service opts in by declaring, on the class itself:

``concrete_class_config_path``
    The configuration key holding the module or file providing the concrete class.
``concrete_class_name``
    The name of the class to take from that module.
``default_concrete_class_path`` (optional)
    The module or file used when the configured value is ``"local"`` or absent.

Example:
    >>> class Storage:
    ...     concrete_class_config_path = "settings.storage"
    ...     concrete_class_name = "ConcreteStorage"
    ...     default_concrete_class_path = "myapp.storage.local"
"""

import importlib
import importlib.util
import logging
import os
import re
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Optional

from wirebox.errors import ConfigurationError

__all__ = ["ConcreteClassResolver", "has_concrete_class_config"]

logger = logging.getLogger(__name__)

CONFIG_PATH_PROPERTY = "concrete_class_config_path"
CLASS_NAME_PROPERTY = "concrete_class_name"
DEFAULT_PATH_PROPERTY = "default_concrete_class_path"
DEFAULT_BUILD_DIR = "build"


def has_concrete_class_config(identifier: Any) -> bool:
    """Whether ``identifier`` itself (not a base class) declares a config path."""
    return isinstance(identifier, type) and CONFIG_PATH_PROPERTY in vars(identifier)


class ConcreteClassResolver:
    """Map an abstract class to the concrete class selected by configuration.

    Args:
        config: A configuration service with ``get`` and ``get_or_raise``
            (see :class:`~wirebox.config.Config`).
        build_dir: Directory relative paths (``./...``) are rooted under.
            Defaults to ``build`` in the current working directory.
    """

    def __init__(self, config: Any, build_dir: Optional[os.PathLike] = None):
        self._config = config
        self._build_dir = Path(build_dir) if build_dir is not None else None

    @property
    def build_dir(self) -> Path:
        return self._build_dir or Path.cwd() / DEFAULT_BUILD_DIR

    def resolve(self, cls: type) -> type:
        """Load and return the concrete class configured for ``cls``.

        Raises:
            ConfigurationError: If a conventional property is missing or has
                the wrong type, ``"local"`` is configured without a default
                path, the module is not found, or the named class is missing
                or not a class.
        """
        config_path = _get_property(cls, CONFIG_PATH_PROPERTY, str)
        class_name = _get_property(cls, CLASS_NAME_PROPERTY, str)

        if DEFAULT_PATH_PROPERTY in vars(cls):
            class_path = self._config.get(config_path, "string", "local")
        else:
            class_path = self._config.get_or_raise(config_path, "string")

        pretty_path = class_path
        if class_path == "local":
            class_path = _get_property(
                cls,
                DEFAULT_PATH_PROPERTY,
                str,
                f'[CONFIG] {cls.__name__} does not support the "local" option in {config_path}.',
            )
            pretty_path = class_path
        elif class_path.startswith("./"):
            class_path = str(self.build_dir / class_path)

        logger.debug("Resolving %s to %s from %s", cls.__name__, class_name, pretty_path)
        module = _load_module(class_path, pretty_path)

        return _get_property(
            module,
            class_name,
            type,
            f"[CONFIG] {pretty_path} is not a valid package or file for {cls.__name__}: "
            f"class {class_name} not found.",
            f"[CONFIG] {pretty_path} is not a valid package or file for {cls.__name__}: "
            f"{class_name} is not a class.",
        )


def _load_module(path: str, pretty_path: str) -> ModuleType:
    try:
        if _is_file_path(path):
            return _load_file(path)
        return importlib.import_module(path)
    except ModuleNotFoundError as e:
        if not _is_file_path(path) and e.name is not None and not _is_prefix(e.name, path):
            # A module imported by the configured module is missing.
            raise
        raise ConfigurationError(
            f"[CONFIG] The package or file {pretty_path} was not found."
        ) from e


def _load_file(path: str) -> ModuleType:
    file_path = Path(path)
    if file_path.suffix != ".py":
        file_path = file_path.with_name(file_path.name + ".py")
    if not file_path.is_file():
        raise ModuleNotFoundError(f"No file {file_path}", name=str(file_path))

    module_name = "wirebox_concrete_" + re.sub(r"\W", "_", str(file_path.resolve()))
    if module_name in sys.modules:
        return sys.modules[module_name]

    spec = importlib.util.spec_from_file_location(module_name, file_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        del sys.modules[module_name]
        raise
    return module


def _is_file_path(path: str) -> bool:
    return path.endswith(".py") or "/" in path or os.sep in path


def _is_prefix(name: str, dotted_path: str) -> bool:
    return dotted_path == name or dotted_path.startswith(name + ".")


def _get_property(
    obj: Any,
    property_name: str,
    expected_type: type,
    not_found_message: Optional[str] = None,
    type_message: Optional[str] = None,
) -> Any:
    owner_name = getattr(obj, "__name__", repr(obj))
    if property_name not in vars(obj):
        raise ConfigurationError(
            not_found_message or f"[CONFIG] {owner_name}.{property_name} is missing."
        )

    value = vars(obj)[property_name]
    if not isinstance(value, expected_type):
        raise ConfigurationError(
            type_message
            or f"[CONFIG] {owner_name}.{property_name} should be a {expected_type.__name__}."
        )
    return value

"""Key/value configuration lookup backed by pydantic-settings.

Keys are dotted paths (``settings.jwt.csrf.enabled``) into a nested mapping.
Environment variables (and an optional ``.env`` file) override the mapping,
one ``__``-separated segment per key part: ``SETTINGS__JWT__CSRF__ENABLED``.
Values are read once, when the :class:`Config` is created.
"""

from typing import Annotated, Any, Dict, Mapping, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError, create_model
from pydantic_settings import BaseSettings, SettingsConfigDict

from wirebox.errors import ConfigurationError

__all__ = ["Config", "ValueType"]

ValueType = str
"""One of ``"string"``, ``"boolean"``, ``"number"``, ``"boolean|string"``,
``"number|string"`` or ``"any"``."""

ENV_NESTED_DELIMITER = "__"
DEFAULT_ROOT = "settings"

_MISSING = object()

_ADAPTERS: Dict[str, TypeAdapter] = {
    "string": TypeAdapter(str),
    "boolean": TypeAdapter(bool),
    "number": TypeAdapter(Annotated[Union[int, float], Field(union_mode="left_to_right")]),
    "boolean|string": TypeAdapter(Annotated[Union[bool, str], Field(union_mode="left_to_right")]),
    "number|string": TypeAdapter(
        Annotated[Union[int, float, str], Field(union_mode="left_to_right")]
    ),
}


class _ConfigSource(BaseSettings):
    """Base for the per-instance settings model; one field per top-level key."""

    model_config = SettingsConfigDict(
        env_nested_delimiter=ENV_NESTED_DELIMITER,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Earlier sources win; nested values are merged key by key.
        return env_settings, dotenv_settings, init_settings


class Config:
    """Read-only configuration service.

    Args:
        settings: Nested mapping of configuration values. Its top-level keys,
            plus ``settings``, can be overridden from the environment.
        env_file: Optional dotenv file read after the process environment.

    Example:
        >>> # with SETTINGS__DEBUG=true in the environment
        >>> config = Config({"settings": {"port": 3000}})
        >>> config.get("settings.port", "number")
        3000
        >>> config.get("settings.debug", "boolean")
        True
    """

    def __init__(self, settings: Optional[Mapping[str, Any]] = None, env_file: Optional[str] = None):
        settings = dict(settings or {})
        settings.setdefault(DEFAULT_ROOT, {})
        fields = {
            root: (Dict[str, Any], {}) if isinstance(value, Mapping) else (Any, None)
            for root, value in settings.items()
        }
        model = create_model("ConfigSnapshot", __base__=_ConfigSource, **fields)
        self._values = model(_env_file=env_file, **settings).model_dump()

    def get(self, key: str, value_type: Optional[ValueType] = None, default: Any = None) -> Any:
        """Return the value of ``key``, or ``default`` if it is not configured.

        Raises:
            ConfigurationError: If the value does not have the requested type.
            ValueError: If ``value_type`` is not a known value type.
        """
        value = self._lookup(key)
        if value is _MISSING:
            return default
        return _convert(key, value, value_type)

    def get_or_raise(self, key: str, value_type: Optional[ValueType] = None) -> Any:
        """Return the value of ``key``.

        Raises:
            ConfigurationError: If the key is not configured or the value does
                not have the requested type.
        """
        value = self._lookup(key)
        if value is _MISSING:
            raise ConfigurationError(
                f'[CONFIG] No value found for the configuration key "{key}". '
                f"Set it in the settings or with the environment variable {environment_name(key)}."
            )
        return _convert(key, value, value_type)

    def _lookup(self, key: str) -> Any:
        node: Any = self._values
        for part in key.split("."):
            if not isinstance(node, Mapping):
                return _MISSING
            # Environment overrides arrive with lower-cased keys.
            if part in node:
                node = node[part]
            elif part.lower() in node:
                node = node[part.lower()]
            else:
                return _MISSING
        return node


def environment_name(key: str) -> str:
    """Name of the environment variable overriding ``key``."""
    return key.replace(".", ENV_NESTED_DELIMITER).upper()


def _convert(key: str, value: Any, value_type: Optional[ValueType]) -> Any:
    if value_type is None or value_type == "any":
        return value
    if value_type not in _ADAPTERS:
        raise ValueError(f"Unknown configuration value type {value_type!r}")

    try:
        # Strings (from the environment in particular) are parsed; anything else must match.
        return _ADAPTERS[value_type].validate_python(value, strict=not isinstance(value, str))
    except ValidationError as e:
        raise ConfigurationError(
            f'[CONFIG] The value of the configuration key "{key}" has an invalid type: '
            f"expected {value_type}, got {type(value).__name__}."
        ) from e

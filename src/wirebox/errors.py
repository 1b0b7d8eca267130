"""Exceptions raised by the wirebox service registry."""

__all__ = [
    "DependencyError",
    "UnresolvedIdentifierError",
    "MissingMetadataError",
    "LifecycleError",
    "ConfigurationError",
    "LazyResolutionError",
]


class DependencyError(Exception):
    """Raised when a service's dependency cannot be resolved or is misdeclared."""

    pass


class UnresolvedIdentifierError(DependencyError, KeyError):
    """Raised when an identifier does not resolve to a registry entry."""

    def __str__(self):
        # KeyError would otherwise wrap the message in quotes.
        return str(self.args[0]) if self.args else ""


class MissingMetadataError(DependencyError):
    """Raised when an injection target cannot be determined from its declaration."""

    pass


class LifecycleError(DependencyError):
    """Raised when a service is booted in a way its lifecycle does not allow."""

    pass


class ConfigurationError(DependencyError):
    """Raised when a concrete class cannot be resolved from configuration."""

    pass


class LazyResolutionError(DependencyError):
    """Raised when a lazy handle cannot produce its value."""

    pass

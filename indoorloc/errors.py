"""Exception types raised by the localization pipeline.

Configuration problems subclass ValueError and projection problems subclass
RuntimeError, so callers catching the built-in types keep working.
"""


class IndoorLocError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(IndoorLocError, ValueError):
    """A configuration value or manual override was rejected."""


class ProjectionError(IndoorLocError, RuntimeError):
    """A device-frame vector could not be projected into the world frame."""

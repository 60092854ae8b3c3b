"""
Exception types for the advert responder.

Startup errors abort process initialization; pipeline errors fail a single
request and are translated into an HTTP 500 by the service layer.
"""


class StartupError(Exception):
    """Base class for errors that must prevent the service from starting."""


class ConfigError(StartupError):
    """Invalid settings or adverts file."""


class LookupUnavailable(StartupError):
    """The geolocation database is missing or corrupt."""


class TemplateLoadError(StartupError):
    """A template image or its text box failed validation."""


class FontLoadError(StartupError):
    """The configured font file could not be loaded."""


class PipelineError(Exception):
    """Base class for per-request failures."""


class CompositionFailure(PipelineError):
    """Text layout or rasterization could not produce an image."""


class EncodeFailure(PipelineError):
    """The composited image could not be serialized."""


class TemplateNotFound(KeyError):
    """No template is registered under the requested name."""

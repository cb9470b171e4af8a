"""
Exceptions raised while converting a Markdown tree.
"""


class ConversionError(Exception):
    """Base class for every error raised by the converter."""


class ArgumentError(ConversionError):
    """Raised when a required option is missing or invalid."""


class ResourceUnavailableError(ConversionError):
    """Raised when the source root, header or footer cannot be acquired."""


class DestinationCreateError(ConversionError):
    """Raised when the destination root cannot be created."""


class FileReadError(ConversionError):
    """Raised when a single source file cannot be read."""


class FileWriteError(ConversionError):
    """Raised when a single destination file cannot be written."""


class NullInputError(ConversionError, ValueError):
    """Raised when a path helper receives no path at all."""


class PathOutsideRootError(ConversionError, ValueError):
    """Raised when a file does not live under the source root."""

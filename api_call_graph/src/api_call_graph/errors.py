# --- Exceptions ---------------------------------------------------------------


class CallGraphError(Exception):
    """Base class for everything this package raises on purpose."""


class ClassFormatError(CallGraphError):
    """A .class file is truncated, corrupt, or not a class file at all."""


class InputDirectoryError(CallGraphError):
    """The classes directory is missing or is not a directory."""


class OutputDirectoryError(CallGraphError):
    """The output directory cannot be created or is not a directory."""


class PipelineStageError(CallGraphError):
    """A pipeline stage was run before its prerequisites (or twice)."""


class BodyExtractionUnavailable(CallGraphError):
    """Method body extraction could not be initialised (e.g. no Java grammar)."""

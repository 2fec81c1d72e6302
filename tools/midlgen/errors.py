"""
Generation-time errors. Every one of them is fatal: the CLI reports it and
exits without writing an output file.
"""


class GenerationError(Exception):
    """Base class for errors raised while generating Go source."""
    pass


class UnsupportedConstructError(GenerationError):
    """A declaration has no representation in the syscall calling model."""
    pass


class EncodingError(GenerationError):
    """Wide-string text cannot be encoded as UTF-16LE."""
    pass


class FormatError(GenerationError):
    """gofmt rejected (or could not process) the generated buffer."""

    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.raw = raw

"""
Exceptions raised while porting a single file.
"""

from portmorph.config.models import ErrorCategory


class PortingFailedError(Exception):
    """A file could not be ported within its attempt budget."""

    def __init__(self, category: ErrorCategory, message: str, chunked: bool = False):
        super().__init__(message)
        self.category = category
        self.message = message
        self.chunked = chunked

    def __str__(self) -> str:
        return f"{self.category.value}: {self.message}"


class EmptyResponseError(Exception):
    """The oracle returned no usable code."""

    pass

"""Common file protocols shared by different modules."""
from typing import Protocol


class FileRText(Protocol):
    """A readable text file."""
    def read(self, count: int = ..., /) -> str: ...


class FileWText(Protocol):
    """A writable text file."""
    def write(self, data: str, /) -> object: ...

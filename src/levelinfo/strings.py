"""The string table, used to resolve ``lookup`` keys and ``$`` prefixed names.

Level names and intermission text may either be written directly, or refer to a key in the
string table so they can be translated.
"""
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from levelinfo.tokenizer import Token, Tokenizer, TokenSyntaxError
from levelinfo.types import FileRText


__all__ = ['StringTable']


class StringTable(Mapping[str, str]):
    """A read-only mapping of keys to display strings. Keys are case-insensitive.

    The original case of each key is preserved for iteration.
    """
    __slots__ = ['_values']
    _values: Dict[str, Tuple[str, str]]

    def __init__(
        self,
        values: Union[Mapping[str, str], Iterable[Tuple[str, str]]] = (),
    ) -> None:
        self._values = {}
        items = values.items() if isinstance(values, Mapping) else values
        for key, text in items:
            self._values[key.casefold()] = (key, text)

    @classmethod
    def parse(cls, file: Union[str, FileRText], filename: Optional[str] = None) -> 'StringTable':
        """Parse a list of ``KEY = "text"`` assignments.

        An optional ``;`` may follow each value.
        """
        if not isinstance(file, str):
            if filename is None:
                filename = getattr(file, 'name', None)
            file = file.read()
        tok = Tokenizer(file, filename, TokenSyntaxError)
        values = []
        while True:
            token, key = tok.get()
            if token is Token.EOF:
                break
            elif token is not Token.STRING:
                raise tok.error(token, key)
            tok.expect(Token.EQUALS)
            values.append((key, tok.expect_string()))
        return cls(values)

    def __repr__(self) -> str:
        return f'{type(self).__name__}({dict(self._values.values())!r})'

    def __getitem__(self, key: str) -> str:
        return self._values[key.casefold()][1]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        for key, _ in self._values.values():
            yield key

    def resolve(self, key: str) -> Optional[str]:
        """Look up this key, returning ``None`` if it is not present."""
        try:
            return self._values[key.casefold()][1]
        except KeyError:
            return None

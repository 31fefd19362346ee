"""Splits MAPINFO text into a stream of tokens.

:py:class:`Tokenizer` reads a string, a text file or any other iterable of string chunks.
:py:class:`IterTokenizer` instead wraps an existing stream of tokens, so it can be filtered before
parsing. Both share the helpers of :py:class:`BaseTokenizer`, which parsers use to pull values out
of the stream and to report errors at the current line.

The lexical rules are simple. Whitespace separates words, but ``{``, ``}``, ``=`` and ``,`` are
always tokens by themselves, even when not surrounded by spaces. Text in double quotes may contain
any of those, along with backslash escapes. ``//`` and ``;`` comment out the rest of the line,
while ``/* */`` comments can span lines. A line break is produced for each ``\\n``, ``\\r`` or
``\\r\\n``.
"""
from typing import (
    Final, Iterable, Iterator, List, NoReturn, Optional, Sequence, Tuple, Type, Union,
)
from typing_extensions import Self, overload
from enum import Enum
from os import fspath as _conv_path
import abc

from levelinfo import StringPath, conv_float, conv_int


__all__ = [
    'TokenSyntaxError', 'BARE_DISALLOWED',
    'Token', 'BaseTokenizer', 'Tokenizer', 'IterTokenizer',
    'escape_text',
]


class TokenSyntaxError(Exception):
    """Raised when text could not be parsed.

    Use :py:meth:`BaseTokenizer.error()` to construct these, which fills in the file and line.
    """
    mess: str
    """The description of the problem."""
    file: Optional[StringPath]
    """The file being read, if known."""
    line_num: Optional[int]
    """The line the problem was found on, if known."""

    def __init__(
        self,
        message: str,
        file: Optional[StringPath] = None,
        line: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.mess = message
        self.file = file
        self.line_num = line

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.mess!r}, {self.file!r}, {self.line_num!r})'

    __hash__ = None  # type: ignore[assignment]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TokenSyntaxError):
            return NotImplemented
        return (self.mess, self.file, self.line_num) == (other.mess, other.file, other.line_num)

    def __str__(self) -> str:
        """The message, followed by the location if available."""
        if self.line_num is not None and self.file is not None:
            return f'{self.mess}\nError occurred on line {self.line_num}, with file "{self.file}".'
        elif self.line_num is not None:
            return f'{self.mess}\nError occurred on line {self.line_num}.'
        elif self.file is not None:
            return f'{self.mess}\nError occurred with file "{self.file}".'
        else:
            return self.mess


class Token(Enum):
    """The kinds of token which are produced."""
    EOF = 0  #: The end of the text. After this is reached, it is returned forever.
    STRING = 1  #: A bare word or quoted text.
    NEWLINE = 2  #: A line break.
    COMMENT = 3  #: The text of a comment, only produced if requested.

    BRACE_OPEN = 4
    BRACE_CLOSE = 5
    EQUALS = 6
    COMMA = 7

    @property
    def has_value(self) -> bool:
        """Whether this kind of token carries variable text."""
        return self is Token.STRING or self is Token.COMMENT


#: The fixed text for tokens which don't carry a value.
_OPERATOR_VALS: Final = {
    Token.EOF: '',
    Token.NEWLINE: '\n',
    Token.BRACE_OPEN: '{',
    Token.BRACE_CLOSE: '}',
    Token.EQUALS: '=',
    Token.COMMA: ',',
}
_OPERATORS: Final = {
    value: token
    for token, value in _OPERATOR_VALS.items()
    if value and value != '\n'
}

_ESCAPES: Final = {'n': '\n', 't': '\t', 'r': '\r', '"': '"', '\\': '\\'}
_ESCAPE_TABLE: Final = str.maketrans({char: '\\' + code for code, char in _ESCAPES.items()})

#: Characters which end a bare word.
BARE_DISALLOWED: Final = frozenset('"{};,=\r\n\t ')
_BOM: Final = '\uFEFF'


class BaseTokenizer(abc.ABC):
    """Provides helpers for reading a stream of tokens.

    Subclasses provide the tokens, by implementing :py:meth:`_get_token()`.
    """
    error_type: Type[TokenSyntaxError]
    """The exception raised for errors, which must be a :py:class:`TokenSyntaxError` subclass."""
    filename: Optional[str]
    """Included in errors, to identify the source text."""
    line_num: int
    """The current line, this is incremented as line breaks are read."""

    #: Tokens returned to the stream, which are produced again last-first.
    _pushback: List[Tuple[Token, str]]

    def __init__(
        self,
        filename: Optional[StringPath],
        error: Optional[Type[TokenSyntaxError]],
    ) -> None:
        if filename is None:
            self.filename = None
        else:
            path = _conv_path(filename)
            # Bytes filenames are only displayed, so use the escaped repr() form.
            self.filename = repr(path)[2:-1] if isinstance(path, bytes) else str(path)

        if error is None:
            error = TokenSyntaxError
        elif not issubclass(error, TokenSyntaxError):
            raise TypeError(f'Error type "{error.__name__}" is not a TokenSyntaxError!')
        self.error_type = error
        self._pushback = []
        self.line_num = 1

    @overload
    def error(self, __message: Token) -> TokenSyntaxError: ...
    @overload
    def error(self, __message: Token, __value: str) -> TokenSyntaxError: ...
    @overload
    def error(self, __message: str, *args: object) -> TokenSyntaxError: ...

    def error(self, message: Union[str, Token], *args: object) -> TokenSyntaxError:
        """Build an exception at the current position, for the caller to raise.

        If a :py:class:`Token` is passed (with its value if any), this describes that token as
        unexpected. Otherwise, the message is ``str.format()``-ed with any arguments given.
        """
        if isinstance(message, Token):
            if len(args) > 1:
                raise TypeError(f'Only one value can be passed with {message.name}, got {args}!')
            value = args[0] if args else ''
            if message is Token.STRING:
                text = f'Unexpected string = "{value}"!'
            elif message is Token.COMMENT:
                text = f'Unexpected comment "//{value}"!'
            elif message is Token.EOF:
                text = 'File ended unexpectedly!'
            elif message is Token.NEWLINE:
                text = 'Unexpected newline!'
            else:
                text = f'Unexpected "{_OPERATOR_VALS[message]}" character!'
        else:
            text = message.format(*args) if args else message
        return self.error_type(text, self.filename, self.line_num)

    def __reduce__(self) -> NoReturn:
        """Tokenizers hold open files or large buffers, so they can't be pickled."""
        raise TypeError('Cannot pickle Tokenizers!')

    @abc.abstractmethod
    def _get_token(self) -> Tuple[Token, str]:
        """Produce the next token from the source."""
        raise NotImplementedError

    def __call__(self) -> Tuple[Token, str]:
        """Return the next token, including newlines and comments."""
        if self._pushback:
            return self._pushback.pop()
        return self._get_token()

    def __iter__(self) -> Self:
        return self

    def __next__(self) -> Tuple[Token, str]:
        token = self()
        if token[0] is Token.EOF:
            raise StopIteration
        return token

    def push_back(self, tok: Token, value: Optional[str] = None) -> None:
        """Return a token to the stream, so it is produced next.

        Any number can be pushed back. A value must be given for strings and comments.
        """
        if not isinstance(tok, Token):
            raise ValueError(f'{tok!r} is not a Token!')
        if tok.has_value:
            if value is None:
                raise ValueError(f'Value required for {tok.name!r}!')
        else:
            value = _OPERATOR_VALS[tok]
        self._pushback.append((tok, value))

    def peek(self) -> Tuple[Token, str]:
        """Look at the next token, leaving it in the stream."""
        token = self()
        self._pushback.append(token)
        return token

    def get(self) -> Tuple[Token, str]:
        """Return the next token, skipping newlines and comments.

        MAPINFO ignores line breaks, so this is what parsers generally use.
        """
        while True:
            token = self()
            if token[0] is not Token.NEWLINE and token[0] is not Token.COMMENT:
                return token

    def expect(self, token: Token, skip_newline: bool = True) -> str:
        """Read the next token, raising an error if it isn't the specified type.

        Newlines are skipped first, unless ``skip_newline`` is false or a newline is expected.
        """
        found, value = self()
        if token is not Token.NEWLINE and skip_newline:
            while found is Token.NEWLINE:
                found, value = self()
        if found is not token:
            raise self.error('Expected {}, but got {}!', token, found)
        return value

    def expect_string(self) -> str:
        """Read a string, skipping newlines."""
        token, value = self.get()
        if token is Token.STRING:
            return value
        elif token is Token.EOF:
            raise self.error('Missing string (unexpected end of file)!')
        raise self.error('Expected a string, but got "{}"!', value)

    def expect_number(self) -> int:
        """Read a string, which must be a decimal or ``0x`` hex integer."""
        text = self.expect_string()
        value = conv_int(text, None)
        if value is None:
            raise self.error('Expected integer, but got "{}"!', text)
        return value

    def expect_float(self) -> float:
        """Read a string, which must be a number."""
        text = self.expect_string()
        value = conv_float(text, None)
        if value is None:
            raise self.error('Expected floating point number, but got "{}"!', text)
        return value

    def expect_name(self, name: str) -> None:
        """Read a token which must be this text, ignoring case. This also matches operators."""
        token, value = self.get()
        if token is Token.EOF:
            raise self.error('Expected "{}", but the file ended!', name)
        if value.casefold() != name.casefold():
            raise self.error('Expected "{}", but got "{}"!', name, value)

    @staticmethod
    def match_keyword(value: str, keywords: Sequence[str]) -> Optional[int]:
        """Return the position of ``value`` in ``keywords`` ignoring case, or ``None``."""
        folded = value.casefold()
        return next((
            i for i, keyword in enumerate(keywords)
            if keyword.casefold() == folded
        ), None)

    def expect_keyword(self, keywords: Sequence[str]) -> int:
        """Read a string which must be one of these keywords, and return its position."""
        text = self.expect_string()
        index = self.match_keyword(text, keywords)
        if index is None:
            raise self.error('Unknown keyword "{}", expected one of: {}', text, ', '.join(keywords))
        return index


class Tokenizer(BaseTokenizer):
    """Reads tokens from MAPINFO text.

    :param data: A string, or an iterable of string chunks like a text file.
    :param filename: Used in errors. If not given, the ``name`` attribute of ``data`` is used.
    :param error: The exception type raised for errors.
    :param allow_escapes: If disabled, backslashes in quoted text are left as-is.
    :param preserve_comments: If enabled, comments are produced as :py:attr:`Token.COMMENT`.
    """
    allow_escapes: bool
    preserve_comments: bool

    _chunks: Iterator[str]
    _buf: str
    _pos: int
    #: Set after a ``\r``, so a following ``\n`` is part of the same line break.
    _after_cr: bool

    def __init__(
        self,
        data: Union[str, Iterable[str]],
        filename: Optional[StringPath] = None,
        error: Type[TokenSyntaxError] = TokenSyntaxError,
        *,
        allow_escapes: bool = True,
        preserve_comments: bool = False,
    ) -> None:
        if filename is None:
            filename = getattr(data, 'name', None)
        super().__init__(filename, error)

        if isinstance(data, (bytes, bytearray)):
            raise TypeError(
                'Cannot parse bytes, decode to text first or wrap the file '
                'in io.TextIOWrapper().'
            )
        if isinstance(data, str):
            self._buf = data
            self._chunks = iter(())
        else:
            self._buf = ''
            self._chunks = iter(data)
        self._pos = 0
        self._after_cr = False
        self.allow_escapes = bool(allow_escapes)
        self.preserve_comments = bool(preserve_comments)

    def _read(self) -> Optional[str]:
        """Consume a character, or return ``None`` once the data is exhausted."""
        while self._pos >= len(self._buf):
            try:
                chunk = next(self._chunks)
            except StopIteration:
                return None
            except UnicodeDecodeError as exc:
                raise self.error('Could not decode file!') from exc
            if not isinstance(chunk, str):
                raise ValueError(f'Expected text, got {type(chunk).__name__}!')
            self._buf = chunk
            self._pos = 0
        char = self._buf[self._pos]
        self._pos += 1
        return char

    def _get_token(self) -> Tuple[Token, str]:
        comment: Optional[str]
        while True:
            char = self._read()
            if char is None:
                return Token.EOF, ''
            if char == '\n' and self._after_cr:
                self._after_cr = False
                continue
            self._after_cr = char == '\r'

            if char == '\n' or char == '\r':
                self.line_num += 1
                return Token.NEWLINE, '\n'
            elif char in ' \t\f\v':
                continue
            elif char in _OPERATORS:
                return _OPERATORS[char], char
            elif char == '"':
                return self._read_quoted()
            elif char == ';':
                comment = self._read_line_comment()
            elif char == '/':
                following = self._read()
                if following == '/':
                    comment = self._read_line_comment()
                elif following == '*':
                    comment = self._read_block_comment()
                else:
                    raise self.error('Single slash found, instead of two for a comment (// or /* */)!')
            elif char == _BOM and self.line_num == 1:
                continue
            else:
                return Token.STRING, self._read_bare(char)

            if comment is not None:
                return Token.COMMENT, comment

    def _read_bare(self, first: str) -> str:
        """Read the remainder of an unquoted word."""
        chars = [first]
        while True:
            char = self._read()
            if char is None:
                break
            if char in BARE_DISALLOWED:
                # This begins the next token.
                self._pos -= 1
                break
            chars.append(char)
        return ''.join(chars)

    def _read_line_comment(self) -> Optional[str]:
        """Read up to the end of the line, leaving the line break in the stream."""
        chars = []
        while True:
            char = self._read()
            if char is None:
                break
            if char == '\n' or char == '\r':
                self._pos -= 1
                break
            chars.append(char)
        return ''.join(chars) if self.preserve_comments else None

    def _read_block_comment(self) -> Optional[str]:
        """Read up to the closing ``*/``."""
        start = self.line_num
        chars: List[str] = []
        after_cr = False
        while True:
            char = self._read()
            if char is None:
                raise self.error('Unclosed /* comment (starting on line {})!', start)
            if char == '/' and chars and chars[-1] == '*':
                chars.pop()
                break
            if char == '\r' or (char == '\n' and not after_cr):
                self.line_num += 1
            after_cr = char == '\r'
            chars.append(char)
        return ''.join(chars) if self.preserve_comments else None

    def _read_quoted(self) -> Tuple[Token, str]:
        """Read a string, after the opening quote."""
        chars: List[str] = []
        after_cr = False
        while True:
            char = self._read()
            if char is None:
                raise self.error('Unterminated string!')
            elif char == '"':
                return Token.STRING, ''.join(chars)

            if char == '\n' and after_cr:
                after_cr = False
                continue
            after_cr = char == '\r'

            if char == '\n' or char == '\r':
                self.line_num += 1
                chars.append('\n')
            elif char == '\\' and self.allow_escapes:
                code = self._read()
                if code is None:
                    raise self.error('Unterminated string!')
                elif code == '\n':
                    # A backslash at the end of a line joins it to the next.
                    self.line_num += 1
                else:
                    chars.append(_ESCAPES.get(code, '\\' + code))
            else:
                chars.append(char)


class IterTokenizer(BaseTokenizer):
    """Produces tokens from an iterable of ``(token, value)`` pairs.

    This allows a token stream to be modified, then parsed normally.
    """
    source: Iterator[Tuple[Token, str]]

    def __init__(
        self,
        source: Iterable[Tuple[Token, str]],
        filename: StringPath = '',
        error: Type[TokenSyntaxError] = TokenSyntaxError,
    ) -> None:
        super().__init__(filename, error)
        self.source = iter(source)

    def __repr__(self) -> str:
        if self.error_type is TokenSyntaxError:
            return f'IterTokenizer({self.source!r}, {self.filename!r})'
        return f'IterTokenizer({self.source!r}, {self.filename!r}, {self.error_type!r})'

    def _get_token(self) -> Tuple[Token, str]:
        return next(self.source, (Token.EOF, ''))


def escape_text(text: str) -> str:
    r"""Escape quotes, backslashes and ``\n``, ``\t``, ``\r``, so the text can be quoted."""
    return text.translate(_ESCAPE_TABLE)

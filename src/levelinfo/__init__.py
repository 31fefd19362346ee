"""Parse MAPINFO level descriptor lumps into level and cluster records.

Both the brace-less "legacy" dialect and the brace-delimited "modern" dialect are accepted.
"""
from typing import TYPE_CHECKING, Final, TypeVar, Union, overload
from typing_extensions import TypeAlias
import os as _os
import re as _re
import sys as _sys


__version__: str
if not TYPE_CHECKING:
    try:
        from ._version import __version__
    except ImportError:
        __version__ = '<unknown>'
    else:
        # Discard the now-useless module. Use globals so static analysis ignores this.
        del _sys.modules[globals().pop('_version').__name__]

__all__ = [
    '__version__',
    'StringPath', 'is_numeric', 'atoi', 'conv_int', 'conv_float',

    'TokenSyntaxError', 'Tokenizer', 'Token',
    'LevelFlags', 'ClusterFlags',
    'LevelInfo', 'ClusterInfo', 'DeferredScript',
    'StringTable',
    'MapInfo', 'MapInfoError', 'NoLevelError', 'NoClusterError',

    # Submodules:
    'colors', 'const', 'fields', 'logger', 'mapinfo', 'records', 'strings', 'tokenizer',  # pyright: ignore
]

ValT = TypeVar('ValT')
# Pathlike can only be subscripted in 3.9+
StringPath: TypeAlias = Union[str, '_os.PathLike[str]']
_NUMERIC: Final = _re.compile('[0-9]+')
_LEADING_INT: Final = _re.compile('[ \t]*([+-]?[0-9]+)')


def is_numeric(text: str) -> bool:
    """Check if this text is made up entirely of ASCII digits.

    Signs, decimal points and whitespace are not permitted, and neither is an empty string.
    """
    return _NUMERIC.fullmatch(text) is not None


def atoi(text: str) -> int:
    """Parse the integer at the start of the string, ignoring any trailing text.

    If there are no digits this returns zero, the same as C's ``atoi()``.
    """
    match = _LEADING_INT.match(text)
    if match is None:
        return 0
    return int(match.group(1))


@overload
def conv_float(val: Union[int, float, str]) -> float: ...
@overload
def conv_float(val: Union[int, float, str], default: ValT) -> Union[ValT, float]: ...
def conv_float(val: Union[int, float, str], default: Union[ValT, float] = 0.0) -> Union[ValT, float]:
    """Converts a string to a float, using a default if it fails.

    The value may also be an integer or float, which is also converted.
    """
    try:
        return float(val)
    except (ValueError, TypeError):
        return default


@overload
def conv_int(val: Union[int, float, str]) -> int: ...
@overload
def conv_int(val: Union[int, float, str], default: ValT) -> Union[ValT, int]: ...
def conv_int(val: Union[int, float, str], default: Union[ValT, int] = 0) -> Union[ValT, int]:
    """Converts a string to an integer, using a default if it fails.

    Strings may be written in decimal, or in hexadecimal with a ``0x`` prefix.
    """
    if isinstance(val, str):
        text = val.strip()
        try:
            if text[:2].casefold() == '0x' or text[:3].casefold() in ('-0x', '+0x'):
                return int(text, 16)
            return int(text, 10)
        except ValueError:
            return default
    try:
        return int(val)
    except (ValueError, TypeError):
        return default


# Import these, so people can reference 'levelinfo.MapInfo' instead of 'levelinfo.mapinfo.MapInfo'.
# Should be done after other code, so everything's initialised.
# isort: off
from levelinfo.tokenizer import TokenSyntaxError, Tokenizer, Token
from levelinfo.const import LevelFlags, ClusterFlags
from levelinfo.records import LevelInfo, ClusterInfo, DeferredScript
from levelinfo.strings import StringTable
from levelinfo.mapinfo import MapInfo, MapInfoError, NoLevelError, NoClusterError

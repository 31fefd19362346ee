"""Parse colour values used for level fades and fog.

Colours are written either as a name (``"dark green"``), a hex triplet (``"#80FF00"`` or
``"80FF00"``) or three space-separated hex components (``"80 ff 0"``).
Parsed colours are ``(alpha, red, green, blue)`` tuples, with the alpha always fully opaque.
"""
from typing import Final, Mapping, Tuple
import re

from typing_extensions import TypeAlias


__all__ = ['Color', 'COLOR_NAMES', 'parse_color', 'format_color']

Color: TypeAlias = Tuple[int, int, int, int]
_HEX_TRIPLET: Final = re.compile('#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})')
_HEX_COMPONENT: Final = re.compile('[0-9a-fA-F]{1,2}')


def _rgb(value: int) -> Tuple[int, int, int]:
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF


#: Named colours, a subset of the X11 ``rgb.txt`` names. Keys are casefolded with spaces removed.
COLOR_NAMES: Final[Mapping[str, Tuple[int, int, int]]] = {
    'black': _rgb(0x000000),
    'white': _rgb(0xFFFFFF),
    'gray': _rgb(0xBEBEBE),
    'grey': _rgb(0xBEBEBE),
    'darkgray': _rgb(0xA9A9A9),
    'darkgrey': _rgb(0xA9A9A9),
    'dimgray': _rgb(0x696969),
    'dimgrey': _rgb(0x696969),
    'lightgray': _rgb(0xD3D3D3),
    'lightgrey': _rgb(0xD3D3D3),
    'red': _rgb(0xFF0000),
    'darkred': _rgb(0x8B0000),
    'maroon': _rgb(0xB03060),
    'green': _rgb(0x00FF00),
    'darkgreen': _rgb(0x006400),
    'forestgreen': _rgb(0x228B22),
    'olivedrab': _rgb(0x6B8E23),
    'blue': _rgb(0x0000FF),
    'darkblue': _rgb(0x00008B),
    'navy': _rgb(0x000080),
    'midnightblue': _rgb(0x191970),
    'skyblue': _rgb(0x87CEEB),
    'cyan': _rgb(0x00FFFF),
    'magenta': _rgb(0xFF00FF),
    'purple': _rgb(0xA020F0),
    'yellow': _rgb(0xFFFF00),
    'gold': _rgb(0xFFD700),
    'orange': _rgb(0xFFA500),
    'brown': _rgb(0xA52A2A),
    'tan': _rgb(0xD2B48C),
    'pink': _rgb(0xFFC0CB),
}


def parse_color(text: str, names: Mapping[str, Tuple[int, int, int]] = COLOR_NAMES) -> Color:
    """Parse a colour string into an ``(alpha, red, green, blue)`` tuple.

    :param names: Named colours to accept, keyed by casefolded name without spaces.
    :raises ValueError: If the text is not a valid colour.
    """
    stripped = text.strip()
    try:
        r, g, b = names[stripped.replace(' ', '').casefold()]
    except KeyError:
        pass
    else:
        return 255, r, g, b

    if (match := _HEX_TRIPLET.fullmatch(stripped)) is not None:
        r, g, b = [int(part, 16) for part in match.groups()]
        return 255, r, g, b

    parts = stripped.split()
    if len(parts) == 3 and all(_HEX_COMPONENT.fullmatch(part) for part in parts):
        # A single digit is doubled, so "f" means "ff".
        r, g, b = [int(part * 2 if len(part) == 1 else part, 16) for part in parts]
        return 255, r, g, b

    raise ValueError(f'Invalid colour "{text}"!')


def format_color(color: Color) -> str:
    """Produce the ``"RR GG BB"`` form of a colour, which :py:func:`parse_color` accepts."""
    _, r, g, b = color
    return f'{r:02X} {g:02X} {b:02X}'

"""Test parsing colour values."""
import pytest

from levelinfo.colors import COLOR_NAMES, format_color, parse_color


@pytest.mark.parametrize('text, result', [
    ('black', (255, 0x00, 0x00, 0x00)),
    ('White', (255, 0xFF, 0xFF, 0xFF)),
    ('dark green', (255, 0x00, 0x64, 0x00)),
    ('  Dark  Green ', (255, 0x00, 0x64, 0x00)),
    ('#ff8000', (255, 0xFF, 0x80, 0x00)),
    ('FF8000', (255, 0xFF, 0x80, 0x00)),
    ('#0a0B0c', (255, 0x0A, 0x0B, 0x0C)),
    ('ff 80 00', (255, 0xFF, 0x80, 0x00)),
    ('f 8 0', (255, 0xFF, 0x88, 0x00)),
    ('10  20\t30', (255, 0x10, 0x20, 0x30)),
])
def test_parse(text: str, result: tuple) -> None:
    """Test the various formats."""
    assert parse_color(text) == result


@pytest.mark.parametrize('text', [
    '',
    'blurple',
    '#ff80',
    '#ff80001',
    'gg 00 00',
    '100 00 00',
    'ff 00',
    'ff 00 00 00',
])
def test_invalid(text: str) -> None:
    """Test text which isn't a colour."""
    with pytest.raises(ValueError, match='Invalid colour'):
        parse_color(text)


def test_custom_names() -> None:
    """A different name table can be used."""
    names = {'ochre': (0xCC, 0x77, 0x22)}
    assert parse_color('Ochre', names) == (255, 0xCC, 0x77, 0x22)
    with pytest.raises(ValueError):
        parse_color('black', names)
    # Hex values are still accepted.
    assert parse_color('01 02 03', names) == (255, 1, 2, 3)


def test_names_normalised() -> None:
    """Names must be stored in the form they're looked up in."""
    for name in COLOR_NAMES:
        assert name == name.casefold().replace(' ', '')


def test_format() -> None:
    """Formatted colours can be parsed again."""
    assert format_color((255, 0xFF, 0x08, 0xAB)) == 'FF 08 AB'
    assert format_color((0, 0, 0, 0)) == '00 00 00'
    assert parse_color(format_color((255, 12, 34, 56))) == (255, 12, 34, 56)

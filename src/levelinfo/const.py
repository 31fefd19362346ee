"""Various useful constants and flag enums."""
from typing import Final
from enum import IntFlag


__all__ = [
    'LevelFlags', 'ClusterFlags', 'NUMBERED_MAP_FLAGS',
    'NAME_LEN', 'DEFAULT_FADE_TABLE', 'MUSIC_PREFIX', 'LOOKUP_SIGIL',
]

#: Short names (maps, lumps, textures) are limited to this many characters.
NAME_LEN: Final = 8
#: The colormap lump used if a level doesn't specify a ``fadetable``.
DEFAULT_FADE_TABLE: Final = 'COLORMAP'
#: Music lumps in the string table do not begin with this, so it must be added.
MUSIC_PREFIX: Final = 'D_'
#: Lump names prefixed with this are resolved through the string table.
LOOKUP_SIGIL: Final = '$'


class LevelFlags(IntFlag):
    """Behaviour flags for a level.

    Only the ones MAPINFO can set are defined here.
    """
    NONE = 0
    NO_INTERMISSION = 0x00000001
    DOUBLE_SKY = 0x00000004  #: Draw ``sky2`` behind ``sky1``.
    NO_SOUND_CLIPPING = 0x00000008
    #: Lower the floors tagged 666 and raise those tagged 667 when all monsters die.
    MAP07_SPECIAL = 0x00000010
    BRUISER_SPECIAL = 0x00000020
    CYBORG_SPECIAL = 0x00000040
    SPIDER_SPECIAL = 0x00000080

    SPEC_LOWER_FLOOR = 0x00000100
    SPEC_OPEN_DOOR = 0x00000200
    #: The special actions are mutually exclusive, neither set means "exit level".
    SPEC_ACTIONS_MASK = 0x00000300

    MONSTERS_TELEFRAG = 0x00000400
    EVEN_LIGHTING = 0x00000800
    SNDSEQ_TOTAL_CTRL = 0x00001000  #: Sound sequences are only started by scripts.
    FORCE_NO_SKY_STRETCH = 0x00002000

    JUMP_NO = 0x00004000
    JUMP_YES = 0x00008000
    FREELOOK_NO = 0x00010000
    FREELOOK_YES = 0x00020000

    LOBBY_SPECIAL = 0x00040000


class ClusterFlags(IntFlag):
    """Flags for a cluster of levels."""
    NONE = 0
    HUB = 0x00000001  #: Levels in this cluster keep their state when revisited.


#: Numbered maps (``map 3`` instead of ``map MAP03``) come from Hexen-style content,
#: which always behaves like this.
NUMBERED_MAP_FLAGS: Final = (
    LevelFlags.NO_INTERMISSION
    | LevelFlags.EVEN_LIGHTING
    | LevelFlags.SNDSEQ_TOTAL_CTRL
)

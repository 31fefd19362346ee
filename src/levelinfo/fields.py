"""The keyword tables which drive the MAPINFO parser.

Each block type has a :py:class:`FieldTable`, mapping keywords to a :py:class:`FieldDescriptor`.
The descriptor specifies how many values follow the keyword, how they are interpreted, and which
attribute of the record they are stored in.
"""
from typing import Dict, Final, Iterable, Iterator, Mapping, Optional, Sequence, Tuple
from enum import Enum

import attrs

from levelinfo.const import ClusterFlags, LevelFlags
from levelinfo.records import ClusterInfo, LevelInfo


__all__ = [
    'FieldKind', 'FieldDescriptor', 'FieldTable',
    'LEVEL_FIELDS', 'CLUSTER_FIELDS', 'EPISODE_FIELDS', 'TOP_LEVEL',
]


class FieldKind(Enum):
    """Specifies how the values following a keyword are parsed."""
    IGNORE = 'ignore'  #: Recognised, but takes no value and does nothing.
    EAT_NEXT = 'eat_next'  #: Takes a value, which is discarded.
    INT = 'int'
    FLOAT = 'float'
    COLOR = 'color'  #: A colour name, or hex components.
    #: A map name, numbers are converted to ``MAPxx`` names.
    MAP_NAME = 'map_name'
    LUMP_NAME = 'lump_name'
    #: A lump name, or a ``$`` followed by a string table key.
    LUMP_NAME_OR_LOOKUP = 'lump_name_or_lookup'
    #: Like :py:attr:`LUMP_NAME_OR_LOOKUP`, but looked up names need the ``D_`` prefix added.
    MUSIC_LUMP_NAME = 'music_lump_name'
    #: A sky texture, followed by the scroll speed.
    SKY = 'sky'
    SET_FLAG = 'set_flag'  #: Sets bits in the flags of the record.
    #: Clears bits in the flags, then sets some. This is used for mutually exclusive flags.
    SET_FLAGS_MASKED = 'set_flags_masked'
    #: The cluster ID for a level.
    CLUSTER = 'cluster'
    STRING = 'string'
    #: A string, truncated to a maximum size.
    FIXED_STRING = 'fixed_string'
    #: Either a string, or ``lookup`` followed by a string table key.
    STRING_OR_LOOKUP = 'string_or_lookup'

    @property
    def takes_value(self) -> bool:
        """If true, the keyword is followed by a value, and ``=`` in braced blocks."""
        return self not in _VALUELESS

    @property
    def stores_value(self) -> bool:
        """If true, the value is stored in an attribute of the record."""
        return self.takes_value and self is not FieldKind.EAT_NEXT


_VALUELESS: Final = frozenset({FieldKind.IGNORE, FieldKind.SET_FLAG, FieldKind.SET_FLAGS_MASKED})


@attrs.frozen
class FieldDescriptor:
    """Describes how to parse one keyword."""
    kind: FieldKind
    #: The name of the record attribute to store the value into.
    attr: Optional[str] = None
    #: For the flag kinds, the bits to set.
    bits: int = 0
    #: For :py:attr:`FieldKind.SET_FLAGS_MASKED`, the bits to keep before setting new ones.
    mask: int = -1
    #: For :py:attr:`FieldKind.FIXED_STRING`, the maximum length.
    size: int = 0

    @classmethod
    def flag(cls, bits: int) -> 'FieldDescriptor':
        """A keyword which sets flags."""
        return cls(FieldKind.SET_FLAG, bits=int(bits))

    @classmethod
    def flags_masked(cls, bits: int, cleared: int) -> 'FieldDescriptor':
        """A keyword which clears the ``cleared`` bits, then sets ``bits``."""
        return cls(FieldKind.SET_FLAGS_MASKED, bits=int(bits), mask=~int(cleared))

    def apply_flags(self, flags: int) -> int:
        """Apply this descriptor to a set of accumulated flags, returning the new flags."""
        if self.kind is FieldKind.SET_FLAG:
            return flags | self.bits
        elif self.kind is FieldKind.SET_FLAGS_MASKED:
            return (flags & self.mask) | self.bits
        else:
            return flags


class FieldTable(Mapping[str, FieldDescriptor]):
    """The keywords permitted in one type of block. Keywords are case-insensitive.

    If a keyword is repeated, the first definition takes priority.
    """
    record: Optional[type]
    """The record type the values are stored in, or ``None`` if nothing can be stored."""
    keywords: Sequence[str]
    """All the keywords, in their original order."""
    _fields: Dict[str, FieldDescriptor]

    def __init__(
        self,
        record: Optional[type],
        fields: Iterable[Tuple[str, FieldDescriptor]],
    ) -> None:
        self.record = record
        self._fields = {}
        keywords = []
        if record is not None:
            attributes = attrs.fields_dict(record)
        else:
            attributes = {}

        for keyword, desc in fields:
            keywords.append(keyword)
            if desc.kind.stores_value:
                if desc.attr is None:
                    raise ValueError(f'Keyword "{keyword}" stores a value, but has no attribute!')
                if desc.attr not in attributes:
                    raise ValueError(
                        f'Keyword "{keyword}" stores into unknown attribute '
                        f'"{desc.attr}" of {getattr(record, "__name__", record)}!'
                    )
            self._fields.setdefault(keyword.casefold(), desc)
        self.keywords = tuple(keywords)

    def __repr__(self) -> str:
        record = getattr(self.record, '__name__', None)
        return f'<FieldTable for {record}: {len(self.keywords)} keywords>'

    def __getitem__(self, keyword: str) -> FieldDescriptor:
        return self._fields[keyword.casefold()]

    def __contains__(self, keyword: object) -> bool:
        return isinstance(keyword, str) and keyword.casefold() in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def lookup(self, keyword: str) -> Optional[FieldDescriptor]:
        """Find the descriptor for a keyword, or return ``None`` if not valid for this block."""
        return self._fields.get(keyword.casefold())


def _field(kind: FieldKind, attr: Optional[str] = None) -> FieldDescriptor:
    return FieldDescriptor(kind, attr)


_IGNORE: Final = FieldDescriptor(FieldKind.IGNORE)
_EAT_NEXT: Final = FieldDescriptor(FieldKind.EAT_NEXT)

#: Keywords valid inside ``map`` and ``defaultmap`` blocks.
LEVEL_FIELDS: Final = FieldTable(LevelInfo, [
    ('levelnum', _field(FieldKind.INT, 'level_num')),
    ('next', _field(FieldKind.MAP_NAME, 'next_map')),
    ('secretnext', _field(FieldKind.MAP_NAME, 'secret_map')),
    ('cluster', _field(FieldKind.CLUSTER, 'cluster')),
    ('sky1', _field(FieldKind.SKY, 'sky1')),
    ('sky2', _field(FieldKind.SKY, 'sky2')),
    ('fade', _field(FieldKind.COLOR, 'fade_color')),
    ('outsidefog', _field(FieldKind.COLOR, 'outside_fog_color')),
    ('titlepatch', _field(FieldKind.LUMP_NAME, 'title_patch')),
    ('par', _field(FieldKind.INT, 'par_time')),
    ('music', _field(FieldKind.MUSIC_LUMP_NAME, 'music')),
    ('nointermission', FieldDescriptor.flag(LevelFlags.NO_INTERMISSION)),
    ('doublesky', FieldDescriptor.flag(LevelFlags.DOUBLE_SKY)),
    ('nosoundclipping', FieldDescriptor.flag(LevelFlags.NO_SOUND_CLIPPING)),
    ('allowmonstertelefrags', FieldDescriptor.flag(LevelFlags.MONSTERS_TELEFRAG)),
    ('map07special', FieldDescriptor.flag(LevelFlags.MAP07_SPECIAL)),
    ('baronspecial', FieldDescriptor.flag(LevelFlags.BRUISER_SPECIAL)),
    ('cyberdemonspecial', FieldDescriptor.flag(LevelFlags.CYBORG_SPECIAL)),
    ('spidermastermindspecial', FieldDescriptor.flag(LevelFlags.SPIDER_SPECIAL)),
    ('specialaction_exitlevel', FieldDescriptor.flags_masked(
        0, LevelFlags.SPEC_ACTIONS_MASK,
    )),
    ('specialaction_opendoor', FieldDescriptor.flags_masked(
        LevelFlags.SPEC_OPEN_DOOR, LevelFlags.SPEC_ACTIONS_MASK,
    )),
    ('specialaction_lowerfloor', FieldDescriptor.flags_masked(
        LevelFlags.SPEC_LOWER_FLOOR, LevelFlags.SPEC_ACTIONS_MASK,
    )),
    ('lightning', _IGNORE),
    ('fadetable', _field(FieldKind.LUMP_NAME, 'fade_table')),
    ('evenlighting', FieldDescriptor.flag(LevelFlags.EVEN_LIGHTING)),
    ('noautosequences', FieldDescriptor.flag(LevelFlags.SNDSEQ_TOTAL_CTRL)),
    ('forcenoskystretch', FieldDescriptor.flag(LevelFlags.FORCE_NO_SKY_STRETCH)),
    ('allowfreelook', FieldDescriptor.flags_masked(
        LevelFlags.FREELOOK_YES, LevelFlags.FREELOOK_NO,
    )),
    ('nofreelook', FieldDescriptor.flags_masked(
        LevelFlags.FREELOOK_NO, LevelFlags.FREELOOK_YES,
    )),
    ('allowjump', FieldDescriptor.flags_masked(LevelFlags.JUMP_YES, LevelFlags.JUMP_NO)),
    ('nojump', FieldDescriptor.flags_masked(LevelFlags.JUMP_NO, LevelFlags.JUMP_YES)),
    ('cdtrack', _EAT_NEXT),
    ('cd_start_track', _EAT_NEXT),
    ('cd_end1_track', _EAT_NEXT),
    ('cd_end2_track', _EAT_NEXT),
    ('cd_end3_track', _EAT_NEXT),
    ('cd_intermission_track', _EAT_NEXT),
    ('cd_title_track', _EAT_NEXT),
    ('warptrans', _EAT_NEXT),
    ('gravity', _field(FieldKind.FLOAT, 'gravity')),
    ('aircontrol', _field(FieldKind.FLOAT, 'air_control')),
    ('islobby', FieldDescriptor.flag(LevelFlags.LOBBY_SPECIAL)),
    ('lobby', FieldDescriptor.flag(LevelFlags.LOBBY_SPECIAL)),
    ('nocrouch', _IGNORE),
    ('intermusic', _EAT_NEXT),
    # Shadowed by the earlier definition.
    ('par', _EAT_NEXT),
    ('sucktime', _EAT_NEXT),
])

#: Keywords valid inside ``cluster`` and ``clusterdef`` blocks.
CLUSTER_FIELDS: Final = FieldTable(ClusterInfo, [
    ('entertext', _field(FieldKind.STRING_OR_LOOKUP, 'enter_text')),
    ('exittext', _field(FieldKind.STRING_OR_LOOKUP, 'exit_text')),
    ('music', _field(FieldKind.MUSIC_LUMP_NAME, 'message_music')),
    ('flat', _field(FieldKind.LUMP_NAME_OR_LOOKUP, 'finale_flat')),
    ('hub', FieldDescriptor.flag(ClusterFlags.HUB)),
])

#: Keywords valid inside ``episode`` blocks. Episodes are not stored, so these are only validated.
EPISODE_FIELDS: Final = FieldTable(None, [
    ('name', _EAT_NEXT),
    ('lookup', _EAT_NEXT),
    ('picname', _EAT_NEXT),
    ('key', _EAT_NEXT),
    ('remove', _IGNORE),
    ('noskillmenu', _IGNORE),
    ('optional', _IGNORE),
])

#: Keywords which begin a block. In the unbraced syntax, these end the previous block.
TOP_LEVEL: Final[Sequence[str]] = (
    'map',
    'defaultmap',
    'cluster',
    'clusterdef',
    'episode',
    'clearepisodes',
    'gameinfo',
    'intermission',
)

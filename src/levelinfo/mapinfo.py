"""Parses MAPINFO lumps, which define the names, music, sky and other properties of levels.

Two dialects exist. The original syntax has no delimiters, each block continues until the next
top-level keyword::

    map MAP01 "Entryway"
    sky1 SKY1 0
    next MAP02

The newer syntax wraps each block in braces, and requires ``=`` between keys and values::

    map MAP01 "Entryway"
    {
        sky1 = "SKY1"
        next = "MAP02"
    }

Which is in use is detected per-block, by the presence of the opening brace. Unknown keys are
skipped in the braced syntax, but are an error in the original syntax, since the number of values
following the key can't be determined.

Parsing populates a :py:class:`MapInfo`, which holds all the levels and clusters defined.
"""
from typing import Iterable, List, Mapping, Optional, Tuple, Union
from enum import Enum

import attrs

from levelinfo import atoi, is_numeric, logger
from levelinfo.colors import COLOR_NAMES, parse_color
from levelinfo.const import (
    LOOKUP_SIGIL, MUSIC_PREFIX, NAME_LEN, NUMBERED_MAP_FLAGS, ClusterFlags, LevelFlags,
)
from levelinfo.fields import (
    CLUSTER_FIELDS, EPISODE_FIELDS, LEVEL_FIELDS, TOP_LEVEL,
    FieldDescriptor, FieldKind, FieldTable,
)
from levelinfo.records import ClusterInfo, LevelInfo, level_num_from_name
from levelinfo.strings import StringTable
from levelinfo.tokenizer import BaseTokenizer, Token, Tokenizer, TokenSyntaxError
from levelinfo.types import FileWText


__all__ = [
    'MapInfoError', 'NoLevelError', 'NoClusterError',
    'DestKind', 'Destination', 'MapInfo',
    'skip_unknown_type', 'skip_unknown_params', 'skip_unknown_block',
    'calc_map_name', 'map_number_name',
]

LOGGER = logger.get_logger(__name__)


class MapInfoError(TokenSyntaxError):
    """Raised if a MAPINFO lump is not valid."""


class NoLevelError(LookupError):
    """Raised if a level is required, but was never defined."""


class NoClusterError(LookupError):
    """Raised if a cluster is required, but was never defined."""


class DestKind(Enum):
    """The kind of record a block is being parsed into."""
    LEVEL = 'level'
    CLUSTER = 'cluster'
    EPISODE = 'episode'  #: Episodes are parsed, but not stored.


_DEST_TYPES = {
    DestKind.LEVEL: LevelInfo,
    DestKind.CLUSTER: ClusterInfo,
    DestKind.EPISODE: type(None),
}


@attrs.frozen
class Destination:
    """The record that a block's values are stored into.

    The record must match the kind, so the flags are written to the right type.
    """
    kind: DestKind
    record: Union[LevelInfo, ClusterInfo, None] = attrs.field()

    @record.validator
    def _check_record(self, _: 'attrs.Attribute[object]', value: object) -> None:
        expected = _DEST_TYPES[self.kind]
        if not isinstance(value, expected):
            raise TypeError(
                f'{self.kind.name} destination requires {expected.__name__}, '
                f'not {type(value).__name__}!'
            )

    @classmethod
    def level(cls, level: LevelInfo) -> 'Destination':
        """Store into a level."""
        return cls(DestKind.LEVEL, level)

    @classmethod
    def cluster(cls, cluster: ClusterInfo) -> 'Destination':
        """Store into a cluster."""
        return cls(DestKind.CLUSTER, cluster)

    @classmethod
    def episode(cls) -> 'Destination':
        """Discard the values of an episode block."""
        return cls(DestKind.EPISODE, None)

    def store(self, attr: str, value: object) -> None:
        """Set a value on the record."""
        if self.record is not None:
            setattr(self.record, attr, value)

    def commit_flags(self, flags: int) -> None:
        """Write the accumulated flags to the record, once the block is complete."""
        if isinstance(self.record, LevelInfo):
            self.record.flags = LevelFlags(flags)
        elif isinstance(self.record, ClusterInfo):
            self.record.flags = ClusterFlags(flags)


def skip_unknown_params(tok: BaseTokenizer) -> None:
    """Skip any additional ``, value`` parameters, after the first value has been read."""
    while True:
        token, value = tok.get()
        if token is not Token.COMMA:
            tok.push_back(token, value)
            return
        tok.get()


def skip_unknown_type(tok: BaseTokenizer) -> None:
    """Skip the values for an unknown key, which has already been read.

    If the key is followed by ``=``, one value and then any number of ``, value`` parameters are
    consumed. Otherwise, the key is a marker with no values.
    """
    token, value = tok.get()
    if token is not Token.EQUALS:
        tok.push_back(token, value)
        return
    tok.get()
    skip_unknown_params(tok)


def skip_unknown_block(tok: BaseTokenizer) -> None:
    """Skip an entire braced block, once the opening brace has been read.

    Nested blocks are skipped too. :py:meth:`MapInfo.parse_block` does not use this, since keys
    inside blocks following an unknown key are still parsed.
    """
    depth = 1
    while depth > 0:
        token, value = tok.get()
        if token is Token.BRACE_OPEN:
            depth += 1
        elif token is Token.BRACE_CLOSE:
            depth -= 1
        elif token is Token.EOF:
            raise tok.error('Unclosed block, file ended before "}" was found!')


def map_number_name(text: str) -> str:
    """Convert a level number into the ``MAPxx`` name for the lump."""
    return f'MAP{atoi(text):02}'


def calc_map_name(episode: int, level: int, map_xx: bool) -> str:
    """Compute the lump name for a level.

    If ``map_xx`` is true, this is Doom 2 style ``MAPxx``, and the episode is ignored.
    Otherwise, it's Doom 1 style ``ExMy``.
    """
    if map_xx:
        return f'MAP{level:02}'
    else:
        return f'E{episode}M{level}'


def _to_string_table(strings: Mapping[str, str]) -> StringTable:
    """Wrap other mappings in a string table."""
    if isinstance(strings, StringTable):
        return strings
    return StringTable(strings)


@attrs.define(eq=False)
class MapInfo:
    """All the levels and clusters defined by MAPINFO lumps.

    Parse lumps with :py:meth:`parse()`, or :py:meth:`parse_lumps()` to handle a game's full set
    of lumps. Later lumps modify levels and clusters defined by earlier ones.
    """
    #: Used to resolve ``lookup`` keys and ``$`` prefixed names.
    strings: StringTable = attrs.field(factory=StringTable, converter=_to_string_table)
    #: Named colours accepted by colour values.
    colors: Mapping[str, Tuple[int, int, int]] = COLOR_NAMES

    levels: List[LevelInfo] = attrs.field(factory=list, init=False)
    clusters: List[ClusterInfo] = attrs.field(factory=list, init=False)
    #: Values set by a ``defaultmap`` block, used as the initial values for following levels.
    default: LevelInfo = attrs.field(factory=LevelInfo.default, init=False)
    #: Set once a level is named by number, which is how Hexen wrote MAPINFO. In that case
    #: clusters assigned to levels become hubs.
    hexen_hack: bool = attrs.field(default=False, init=False)

    def __repr__(self) -> str:
        return f'<MapInfo: {len(self.levels)} levels, {len(self.clusters)} clusters>'

    # Registry lookups.

    def find_level_index(self, name: str) -> Optional[int]:
        """Find the position of the level with this name, or return ``None`` if not defined."""
        key = name[:NAME_LEN].casefold()
        for i, level in enumerate(self.levels):
            if level.name[:NAME_LEN].casefold() == key:
                return i
        return None

    def find_cluster_index(self, cluster: int) -> Optional[int]:
        """Find the position of the cluster with this ID, or return ``None`` if not defined."""
        for i, info in enumerate(self.clusters):
            if info.cluster == cluster:
                return i
        return None

    def find_level(self, name: str) -> LevelInfo:
        """Find the level with this name, which must have been defined."""
        index = self.find_level_index(name)
        if index is None:
            raise NoLevelError(f'Could not find level info for "{name}"!')
        return self.levels[index]

    def find_level_by_num(self, num: int) -> LevelInfo:
        """Find the first level with this level number, which must have been defined."""
        for level in self.levels:
            if level.level_num == num:
                return level
        raise NoLevelError(f'Could not find level info for level number {num}!')

    def find_cluster(self, cluster: int) -> ClusterInfo:
        """Find the cluster with this ID, which must have been defined."""
        index = self.find_cluster_index(cluster)
        if index is None:
            raise NoClusterError(f'Could not find cluster info for cluster number {cluster}!')
        return self.clusters[index]

    def level_for(self, name: str) -> LevelInfo:
        """Find the level with this name, creating it if not already present."""
        index = self.find_level_index(name)
        if index is not None:
            return self.levels[index]
        level = LevelInfo.default()
        level.name = name.upper()[:NAME_LEN]
        self.levels.append(level)
        return level

    def cluster_for(self, cluster: int) -> ClusterInfo:
        """Find the cluster with this ID, creating it if not already present."""
        index = self.find_cluster_index(cluster)
        if index is not None:
            return self.clusters[index]
        info = ClusterInfo(cluster)
        self.clusters.append(info)
        return info

    # Clearing.

    def clear(self) -> None:
        """Remove all levels and clusters, so a new set of lumps can be parsed."""
        self.clear_snapshots()
        self.remove_deferreds()
        self.levels.clear()
        self.clusters.clear()
        self.default = LevelInfo.default()
        self.hexen_hack = False

    def clear_snapshots(self) -> None:
        """Discard the saved state of every level."""
        for level in self.levels:
            level.snapshot = None

    def remove_deferreds(self) -> None:
        """Discard the deferred script actions of every level."""
        for level in self.levels:
            level.deferred.clear()

    # Parsing.

    def parse_lumps(
        self,
        base: Optional[Tuple[str, str]],
        lumps: Iterable[Tuple[str, str]],
    ) -> None:
        """Parse the MAPINFO lumps for a game.

        The base lump for the game is parsed first, then each ``ZMAPINFO`` lump. ``MAPINFO`` lumps
        are only parsed if no ``ZMAPINFO`` lump is present. Other lumps are ignored.

        :param base: The ``(content, name)`` of the game's own definitions, if any.
        :param lumps: The ``(content, name)`` pairs of the loaded lumps, in load order.
        """
        lumps = list(lumps)
        sources = [base] if base is not None else []
        zmapinfo = [lump for lump in lumps if lump[1].upper() == 'ZMAPINFO']
        if zmapinfo:
            sources += zmapinfo
        else:
            sources += [lump for lump in lumps if lump[1].upper() == 'MAPINFO']
        self.parse_all(sources)

    def parse_all(self, sources: Iterable[Tuple[Union[str, Iterable[str]], str]]) -> None:
        """Parse each ``(content, label)`` pair in order."""
        count = 0
        for content, label in sources:
            self.parse(content, label)
            count += 1
        LOGGER.info(
            'Parsed {} MAPINFO lumps: {} levels, {} clusters',
            count, len(self.levels), len(self.clusters),
        )

    def parse(self, data: Union[str, Iterable[str]], filename: Optional[str] = None) -> None:
        """Parse a single MAPINFO lump.

        Any ``defaultmap`` only applies to levels defined later in this same lump.

        :raises MapInfoError: If the lump is invalid. Levels and clusters parsed before the error
            are left in place.
        """
        tok = Tokenizer(data, filename, MapInfoError)
        self.default = LevelInfo.default()
        with logger.context(tok.filename or '<text>'):
            LOGGER.debug('Parsing MAPINFO')
            while True:
                token, value = tok.get()
                if token is Token.EOF:
                    break
                elif token is not Token.STRING:
                    raise tok.error(token, value)
                index = tok.match_keyword(value, TOP_LEVEL)
                if index is None:
                    raise tok.error('Unimplemented top-level type "{}"!', value)
                block = TOP_LEVEL[index]

                if block == 'map':
                    self._parse_map(tok)
                elif block == 'defaultmap':
                    self.default = LevelInfo.default()
                    self.parse_block(tok, LEVEL_FIELDS, Destination.level(self.default), 0)
                elif block in ('cluster', 'clusterdef'):
                    cluster = self.cluster_for(tok.expect_number())
                    self.parse_block(tok, CLUSTER_FIELDS, Destination.cluster(cluster), 0)
                elif block == 'episode':
                    self._parse_episode(tok)
                elif block == 'clearepisodes':
                    pass  # Episodes aren't stored.
                elif block == 'gameinfo':
                    self.parse_block(tok, None, None, 0)
                elif block == 'intermission':
                    tok.expect_string()  # Name
                    self.parse_block(tok, None, None, 0)
                else:
                    raise AssertionError(block)

    def _parse_map(self, tok: BaseTokenizer) -> None:
        """Parse a map block."""
        flags = int(self.default.flags)
        name = tok.expect_string()
        if is_numeric(name):
            # Hexen levels behave like this automatically.
            name = map_number_name(name)
            self.hexen_hack = True
            flags |= NUMBERED_MAP_FLAGS

        level = self.level_for(name)
        level.copy_from(self.default)
        level.name = name.upper()[:NAME_LEN]

        text = tok.expect_string()
        if text.casefold() == 'lookup':
            level.level_name = self._lookup(tok, tok.expect_string())
        else:
            level.level_name = text

        # Set the level number now, so levels can be referred to by number.
        num = level_num_from_name(level.name)
        if num:
            level.level_num = num

        self.parse_block(tok, LEVEL_FIELDS, Destination.level(level), flags)

    def _parse_episode(self, tok: BaseTokenizer) -> None:
        """Parse an episode block. These are not stored."""
        tok.expect_string()  # Map lump
        token, value = tok.get()
        if token is Token.STRING and value.casefold() == 'teaser':
            tok.expect_string()  # Teaser lump
        else:
            tok.push_back(token, value)
        self.parse_block(tok, EPISODE_FIELDS, Destination.episode(), 0)

    def _lookup(self, tok: BaseTokenizer, key: str) -> str:
        """Resolve a key from the string table."""
        text = self.strings.resolve(key)
        if text is None:
            raise tok.error('Unknown lookup string "{}"!', key)
        return text

    def parse_block(
        self,
        tok: BaseTokenizer,
        table: Optional[FieldTable],
        dest: Optional[Destination],
        flags: int,
    ) -> None:
        """Parse the contents of a block, after the header.

        :param table: The keywords valid in the block. If ``None``, the entire block is skipped.
            This only works for braced blocks.
        :param dest: Where to store values.
        :param flags: The initial flags, these are written to the destination when complete.
        """
        # Zero if the original syntax, otherwise the number of open braces.
        depth = 0
        while True:
            token, value = tok.get()
            if token is Token.BRACE_OPEN:
                depth += 1
                continue
            elif token is Token.BRACE_CLOSE:
                depth -= 1
                if depth <= 0:
                    break
                continue
            elif token is Token.EOF:
                if depth > 0:
                    raise tok.error('Unclosed block, file ended before "}" was found!')
                break

            if depth <= 0:
                if token is not Token.STRING:
                    raise tok.error(token, value)
                if (
                    tok.match_keyword(value, TOP_LEVEL) is not None
                    # "cluster" is both a block type, and a key in levels.
                    and (table is None or value not in table)
                ):
                    # The next block is starting.
                    tok.push_back(token, value)
                    break

            desc = table.lookup(value) if table is not None and token is Token.STRING else None
            if desc is None:
                if depth <= 0:
                    # We can't tell how many values follow, so we can't continue.
                    raise tok.error('Unknown MAPINFO token "{}"!', value)
                LOGGER.debug('Skipping unknown key "{}" on line {}', value, tok.line_num)
                # A following block is entered normally, and its keys parsed with this table.
                skip_unknown_type(tok)
                continue

            flags = self._parse_field(tok, desc, dest, flags, depth > 0)

        if dest is not None:
            dest.commit_flags(flags)

    def _parse_field(
        self,
        tok: BaseTokenizer,
        desc: FieldDescriptor,
        dest: Optional[Destination],
        flags: int,
        braced: bool,
    ) -> int:
        """Parse the values for a single key, and return the new flags."""
        kind = desc.kind
        if not kind.takes_value:
            return desc.apply_flags(flags)

        if braced:
            tok.expect_name('=')

        value: object
        if kind is FieldKind.EAT_NEXT:
            tok.expect_string()
            return flags
        elif kind is FieldKind.INT:
            value = tok.expect_number()
        elif kind is FieldKind.FLOAT:
            value = tok.expect_float()
        elif kind is FieldKind.COLOR:
            text = tok.expect_string()
            try:
                value = parse_color(text, self.colors)
            except ValueError:
                raise tok.error('Invalid colour "{}"!', text) from None
        elif kind is FieldKind.MAP_NAME:
            text = tok.expect_string()
            if is_numeric(text):
                text = map_number_name(text)
            value = text.upper()[:NAME_LEN]
        elif kind is FieldKind.LUMP_NAME:
            value = tok.expect_string().upper()[:NAME_LEN]
        elif kind is FieldKind.LUMP_NAME_OR_LOOKUP or kind is FieldKind.MUSIC_LUMP_NAME:
            text = tok.expect_string()
            if text.startswith(LOOKUP_SIGIL):
                text = self._lookup(tok, text[len(LOOKUP_SIGIL):])
                if kind is FieldKind.MUSIC_LUMP_NAME:
                    # Music in the string table doesn't include the prefix.
                    text = MUSIC_PREFIX + text
            value = text.upper()[:NAME_LEN]
        elif kind is FieldKind.SKY:
            value = tok.expect_string().upper()[:NAME_LEN]
            if braced:
                skip_unknown_params(tok)
            else:
                tok.expect_float()  # Scroll speed, unused.
        elif kind is FieldKind.CLUSTER:
            value = tok.expect_number()
            if self.hexen_hack:
                self.cluster_for(value).flags |= ClusterFlags.HUB
        elif kind is FieldKind.STRING:
            value = tok.expect_string()
        elif kind is FieldKind.FIXED_STRING:
            value = tok.expect_string()[:desc.size]
        elif kind is FieldKind.STRING_OR_LOOKUP:
            text = tok.expect_string()
            if text.casefold() == 'lookup':
                if braced:
                    tok.expect_name(',')
                value = self._lookup(tok, tok.expect_string())
            else:
                value = text
        else:
            raise AssertionError(f'Unhandled field kind {kind}!')

        if dest is not None and desc.attr is not None:
            dest.store(desc.attr, value)
        return flags

    # Export.

    def export(self, file: FileWText) -> None:
        """Write all clusters and levels to a file, in the braced syntax."""
        for cluster in self.clusters:
            cluster.export(file)
            file.write('\n')
        for level in self.levels:
            level.export(file)
            file.write('\n')

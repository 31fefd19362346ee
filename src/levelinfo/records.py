"""The records MAPINFO produces, describing levels and clusters of levels."""
from typing import Final, List, Optional, Tuple
from enum import Enum

import attrs

from levelinfo import atoi
from levelinfo.colors import Color, format_color
from levelinfo.const import DEFAULT_FADE_TABLE, ClusterFlags, LevelFlags
from levelinfo.tokenizer import escape_text
from levelinfo.types import FileWText


__all__ = [
    'DeferKind', 'DeferredScript', 'LevelInfo', 'ClusterInfo', 'NO_OUTSIDE_FOG',
    'level_num_from_name',
]

#: Fog colour used if a level doesn't specify one, meaning no tint is applied.
NO_OUTSIDE_FOG: Final[Color] = (255, 0, 0, 0)
_NO_COLOR: Final[Color] = (0, 0, 0, 0)
_OWNED_STATE: Final = frozenset({'snapshot', 'deferred'})

# Flags are exported with the keyword that sets them, in this order.
_LEVEL_FLAG_KEYWORDS: Final[List[Tuple[LevelFlags, str]]] = [
    (LevelFlags.NO_INTERMISSION, 'nointermission'),
    (LevelFlags.DOUBLE_SKY, 'doublesky'),
    (LevelFlags.NO_SOUND_CLIPPING, 'nosoundclipping'),
    (LevelFlags.MONSTERS_TELEFRAG, 'allowmonstertelefrags'),
    (LevelFlags.MAP07_SPECIAL, 'map07special'),
    (LevelFlags.BRUISER_SPECIAL, 'baronspecial'),
    (LevelFlags.CYBORG_SPECIAL, 'cyberdemonspecial'),
    (LevelFlags.SPIDER_SPECIAL, 'spidermastermindspecial'),
    (LevelFlags.SPEC_LOWER_FLOOR, 'specialaction_lowerfloor'),
    (LevelFlags.SPEC_OPEN_DOOR, 'specialaction_opendoor'),
    (LevelFlags.EVEN_LIGHTING, 'evenlighting'),
    (LevelFlags.SNDSEQ_TOTAL_CTRL, 'noautosequences'),
    (LevelFlags.FORCE_NO_SKY_STRETCH, 'forcenoskystretch'),
    (LevelFlags.FREELOOK_YES, 'allowfreelook'),
    (LevelFlags.FREELOOK_NO, 'nofreelook'),
    (LevelFlags.JUMP_YES, 'allowjump'),
    (LevelFlags.JUMP_NO, 'nojump'),
    (LevelFlags.LOBBY_SPECIAL, 'islobby'),
]


def _quote(text: str) -> str:
    return f'"{escape_text(text)}"'


def level_num_from_name(name: str) -> int:
    """Compute the level number implied by a ``MAPxx`` name, or zero for other names."""
    if name[:3].upper() == 'MAP' and len(name) <= 5:
        num = atoi(name[3:])
        if 1 <= num <= 99:
            return num
    return 0


class DeferKind(Enum):
    """The action a deferred script performs when its level is next entered."""
    EXECUTE = 'execute'
    EXECUTE_ALWAYS = 'execute_always'
    SUSPEND = 'suspend'
    TERMINATE = 'terminate'


@attrs.define
class DeferredScript:
    """A script action queued for a level which is not currently loaded."""
    kind: DeferKind
    script: int
    args: Tuple[int, int, int] = (0, 0, 0)
    #: The player which triggered the action.
    player: int = 0


@attrs.define(eq=True)
class LevelInfo:
    """Metadata for a single map.

    Names of maps and lumps are stored uppercase, and are at most 8 characters long.
    """
    name: str = ''  #: The map lump, like ``MAP01`` or ``E1M1``.
    #: The name shown on the automap and intermission screen.
    level_name: Optional[str] = None
    level_num: int = 0
    next_map: str = ''
    secret_map: str = ''
    cluster: int = 0
    sky1: str = ''
    sky2: str = ''
    fade_color: Color = _NO_COLOR
    outside_fog_color: Color = NO_OUTSIDE_FOG
    title_patch: str = ''
    par_time: int = 0
    music: str = ''
    flags: LevelFlags = LevelFlags.NONE
    #: If zero, the server's gravity/air control settings are used instead.
    gravity: float = 0.0
    air_control: float = 0.0
    fade_table: str = DEFAULT_FADE_TABLE

    # State captured while the game runs, not parsed from MAPINFO.
    #: The saved state of the level, if it was left inside a hub.
    snapshot: Optional[bytes] = attrs.field(default=None, eq=False, repr=False)
    #: Script actions to perform when the level is next entered.
    deferred: List[DeferredScript] = attrs.field(factory=list, eq=False, repr=False)

    @classmethod
    def default(cls) -> 'LevelInfo':
        """Produce a level with all values set to their defaults."""
        return cls()

    def copy_from(self, template: 'LevelInfo') -> None:
        """Overwrite every parsed value with those of another level.

        The snapshot and deferred scripts belong to this level, so they are left untouched.
        """
        for field in attrs.fields(LevelInfo):
            if field.name not in _OWNED_STATE:
                setattr(self, field.name, getattr(template, field.name))

    def export(self, file: FileWText) -> None:
        """Write this level to a file, in the braced syntax."""
        file.write(f'map {self.name} {_quote(self.level_name or "")}\n{{\n')
        if self.level_num != level_num_from_name(self.name):
            file.write(f'\tlevelnum = {self.level_num}\n')
        if self.next_map:
            file.write(f'\tnext = {_quote(self.next_map)}\n')
        if self.secret_map:
            file.write(f'\tsecretnext = {_quote(self.secret_map)}\n')
        if self.cluster:
            file.write(f'\tcluster = {self.cluster}\n')
        if self.sky1:
            file.write(f'\tsky1 = {_quote(self.sky1)}\n')
        if self.sky2:
            file.write(f'\tsky2 = {_quote(self.sky2)}\n')
        if self.fade_color != _NO_COLOR:
            file.write(f'\tfade = "{format_color(self.fade_color)}"\n')
        if self.outside_fog_color != NO_OUTSIDE_FOG:
            file.write(f'\toutsidefog = "{format_color(self.outside_fog_color)}"\n')
        if self.title_patch:
            file.write(f'\ttitlepatch = {_quote(self.title_patch)}\n')
        if self.par_time:
            file.write(f'\tpar = {self.par_time}\n')
        if self.music:
            file.write(f'\tmusic = {_quote(self.music)}\n')
        if self.gravity:
            file.write(f'\tgravity = {self.gravity!r}\n')
        if self.air_control:
            file.write(f'\taircontrol = {self.air_control!r}\n')
        if self.fade_table != DEFAULT_FADE_TABLE:
            file.write(f'\tfadetable = {_quote(self.fade_table)}\n')
        for flag, keyword in _LEVEL_FLAG_KEYWORDS:
            if flag in self.flags:
                file.write(f'\t{keyword}\n')
        file.write('}\n')


@attrs.define(eq=True)
class ClusterInfo:
    """A group of levels, sharing intermission text and hub behaviour."""
    cluster: int
    #: Text displayed when entering the cluster from another.
    enter_text: Optional[str] = None
    #: Text displayed when leaving the cluster.
    exit_text: Optional[str] = None
    #: Music played while the text is displayed.
    message_music: str = ''
    #: Background for the text.
    finale_flat: str = ''
    flags: ClusterFlags = ClusterFlags.NONE

    @property
    def is_hub(self) -> bool:
        """Levels in a hub keep their state when revisited."""
        return ClusterFlags.HUB in self.flags

    def export(self, file: FileWText) -> None:
        """Write this cluster to a file, in the braced syntax."""
        file.write(f'cluster {self.cluster}\n{{\n')
        if self.enter_text is not None:
            file.write(f'\tentertext = {_quote(self.enter_text)}\n')
        if self.exit_text is not None:
            file.write(f'\texittext = {_quote(self.exit_text)}\n')
        if self.message_music:
            file.write(f'\tmusic = {_quote(self.message_music)}\n')
        if self.finale_flat:
            file.write(f'\tflat = {_quote(self.finale_flat)}\n')
        if self.is_hub:
            file.write('\thub\n')
        file.write('}\n')

"""Test parsing MAPINFO lumps."""
from pathlib import Path
import io
import logging

from dirty_equals import HasAttributes, IsList
import pytest

from levelinfo.const import NUMBERED_MAP_FLAGS, ClusterFlags, LevelFlags
from levelinfo.fields import FieldDescriptor, FieldKind, FieldTable
from levelinfo.mapinfo import (
    Destination, DestKind, MapInfo, MapInfoError, NoClusterError, NoLevelError,
    calc_map_name, map_number_name, skip_unknown_block, skip_unknown_type,
)
from levelinfo.records import NO_OUTSIDE_FOG, ClusterInfo, DeferKind, DeferredScript, LevelInfo
from levelinfo.strings import StringTable
from levelinfo.tokenizer import Token, Tokenizer, TokenSyntaxError


def load_strings(datadir: Path) -> StringTable:
    """Load the sample string table."""
    with open(datadir / 'strings.txt', encoding='utf8') as f:
        return StringTable.parse(f)


def parse_file(datadir: Path, filename: str) -> MapInfo:
    """Parse one of the sample lumps."""
    info = MapInfo(load_strings(datadir))
    with open(datadir / filename, encoding='utf8') as f:
        info.parse(f, filename)
    return info


def test_modern_scenario() -> None:
    """A single braced map block."""
    info = MapInfo()
    info.parse('map MAP01 "Entryway" { levelnum = 1 cluster = 1 }')
    assert info.levels == IsList(HasAttributes(
        name='MAP01',
        level_name='Entryway',
        level_num=1,
        cluster=1,
    ))
    # Not a Hexen map, so clusters aren't created.
    assert info.clusters == []
    assert not info.hexen_hack


def test_legacy_scenario() -> None:
    """A numbered map, with the name looked up."""
    info = MapInfo({'HU1': 'Hub One'})
    info.parse('map 3 lookup HU1 sky1 SKY3 0')
    assert info.levels == IsList(HasAttributes(
        name='MAP03',
        level_name='Hub One',
        level_num=3,
        sky1='SKY3',
        flags=NUMBERED_MAP_FLAGS,
    ))
    assert info.hexen_hack


@pytest.mark.parametrize('num, name', [
    ('5', 'MAP05'),
    ('05', 'MAP05'),
    ('12', 'MAP12'),
    ('123', 'MAP123'),
])
def test_numeric_map_names(num: str, name: str) -> None:
    """Numeric map names are converted to MAPxx names."""
    info = MapInfo()
    info.parse(f'map {num} "Level"\nnext {num}\n')
    [level] = info.levels
    assert level.name == name
    assert level.next_map == name
    assert map_number_name(num) == name


def test_last_value_wins() -> None:
    """Repeating a key overwrites the earlier value."""
    info = MapInfo()
    info.parse('map MAP01 "Entry" {\n\tpar = 10\n\tmusic = "D_RUNNIN"\n\tpar = 20\n}')
    assert info.find_level('MAP01').par_time == 20


def test_redefine_level() -> None:
    """Defining a level twice reuses the same record."""
    info = MapInfo()
    info.parse('map MAP01 "First" { par = 10 }')
    level = info.levels[0]
    level.deferred.append(DeferredScript(DeferKind.EXECUTE, 42, (1, 2, 3), player=1))
    level.snapshot = b'saved'

    info.parse('map map01 "Second" { next = "MAP05" }')
    assert len(info.levels) == 1
    assert info.levels[0] is level
    assert level.level_name == 'Second'
    assert level.next_map == 'MAP05'
    # Values are reset to the defaults each time.
    assert level.par_time == 0
    # But runtime state is kept.
    assert level.snapshot == b'saved'
    assert level.deferred == [DeferredScript(DeferKind.EXECUTE, 42, (1, 2, 3), 1)]


def test_modern_requires_equals() -> None:
    """Once a block is braced, every value needs an equals sign."""
    info = MapInfo()
    with pytest.raises(MapInfoError, match='Expected "="') as exc:
        info.parse('map MAP01 "Entry"\n{\n\tnext MAP02\n}\n', 'ZMAPINFO')
    assert exc.value.line_num == 3
    assert exc.value.file == 'ZMAPINFO'


def test_modern_unknown_field() -> None:
    """Unknown fields in braced blocks are skipped."""
    info = MapInfo()
    info.parse('''\
map MAP01 "Entry" {
    par = 15
    weirdfield = 5, 6
    next = "MAP02"
    weirdflag
    sky1 = "SKY1"
}
''')
    assert info.levels == IsList(HasAttributes(
        name='MAP01', par_time=15, next_map='MAP02', sky1='SKY1',
    ))

def test_modern_unknown_key_with_block() -> None:
    """A block after an unknown key is entered, and the keys inside still apply."""
    info = MapInfo()
    info.parse('map MAP01 "x" { foo { par = 5 } next = "MAP02" }')
    assert info.levels == IsList(HasAttributes(par_time=5, next_map='MAP02'))

    info.parse('''\
map MAP02 "y" {
    newblock {
        weirdfield = 1, 2
        sky1 = "SKY3"
        deeper { doublesky }
    }
    music = "D_STALKS"
}
''')
    assert info.find_level('MAP02') == HasAttributes(
        sky1='SKY3', music='D_STALKS', flags=LevelFlags.DOUBLE_SKY,
    )


def test_string_field_kinds() -> None:
    """Plain strings are stored as-is, fixed strings are truncated to their size."""
    table = FieldTable(ClusterInfo, [
        ('flat', FieldDescriptor(FieldKind.FIXED_STRING, 'finale_flat', size=4)),
        ('text', FieldDescriptor(FieldKind.STRING, 'enter_text')),
    ])
    info = MapInfo({'lookup': 'Not used'})

    cluster = ClusterInfo(1)
    tok = Tokenizer('{ flat = "ABCDEFG" text = "lookup" }')
    info.parse_block(tok, table, Destination.cluster(cluster), 0)
    assert cluster == ClusterInfo(1, enter_text='lookup', finale_flat='ABCD')
    assert tok.get() == (Token.EOF, '')

    cluster = ClusterInfo(2)
    tok = Tokenizer('flat abcdefgh\ntext "Two words"\nflat xy\nmap MAP01 "Next"')
    info.parse_block(tok, table, Destination.cluster(cluster), 0)
    assert cluster == ClusterInfo(2, enter_text='Two words', finale_flat='xy')
    # The following block is left for the caller.
    assert tok.get() == (Token.STRING, 'map')



def test_legacy_unknown_field() -> None:
    """Unknown fields are fatal in the original syntax."""
    info = MapInfo()
    with pytest.raises(MapInfoError, match='"weirdfield"'):
        info.parse('map MAP01 "Entry"\npar 15\nweirdfield 5\nnext MAP02\n')
    # The partially parsed level is left behind.
    assert info.levels == IsList(HasAttributes(name='MAP01'))


def test_skip_unknown_type() -> None:
    """Skipping a key consumes the value list, leaving the next key."""
    tok = Tokenizer('foo = 1, 2, 3 next = "MAP02"')
    assert tok.get() == (Token.STRING, 'foo')
    skip_unknown_type(tok)
    assert tok.get() == (Token.STRING, 'next')
    assert tok.get() == (Token.EQUALS, '=')

    # A bare key has no values to skip.
    tok = Tokenizer('marker\nnext = "MAP02"')
    assert tok.get() == (Token.STRING, 'marker')
    skip_unknown_type(tok)
    assert tok.get() == (Token.STRING, 'next')


def test_skip_unknown_block() -> None:
    """Nested blocks are skipped entirely."""
    tok = Tokenizer('{ a = 1 { b = "}" } c } after')
    assert tok.get() == (Token.BRACE_OPEN, '{')
    skip_unknown_block(tok)
    assert tok.get() == (Token.STRING, 'after')

    tok = Tokenizer('{ a = 1 { b = 2 }')
    tok.get()
    with pytest.raises(TokenSyntaxError, match='Unclosed block'):
        skip_unknown_block(tok)


def test_legacy_cluster_key() -> None:
    """In the original syntax, "cluster" is a key for levels, not a new block."""
    info = MapInfo()
    info.parse('map MAP01 "One"\ncluster 2\nnext MAP02\nmap MAP02 "Two"\n')
    assert info.levels == IsList(
        HasAttributes(name='MAP01', cluster=2, next_map='MAP02'),
        HasAttributes(name='MAP02', cluster=0),
    )
    assert info.clusters == []


def test_legacy_cluster_blocks() -> None:
    """Cluster blocks end when the next starts."""
    info = MapInfo()
    info.parse('cluster 1\nhub\nexittext "Bye"\ncluster 2\nentertext "Hi"\nclusterdef 3')
    assert info.clusters == IsList(
        HasAttributes(cluster=1, flags=ClusterFlags.HUB, exit_text='Bye', enter_text=None),
        HasAttributes(cluster=2, flags=ClusterFlags.NONE, exit_text=None, enter_text='Hi'),
        HasAttributes(cluster=3, flags=ClusterFlags.NONE),
    )


def test_cluster_lookup() -> None:
    """Cluster text can be looked up, with a comma in the braced syntax."""
    info = MapInfo({'Text1': 'First', 'TEXT2': 'Second', 'MUS': 'victor', 'BG': 'flat5'})
    info.parse('cluster 1\nentertext lookup text1\nmusic $MUS\nflat $BG\n')
    info.parse('cluster 2 {\nentertext = lookup, "text2"\nmusic = "$mus"\n}')
    assert info.find_cluster(1) == ClusterInfo(
        1, enter_text='First', message_music='D_VICTOR', finale_flat='FLAT5',
    )
    assert info.find_cluster(2) == ClusterInfo(2, enter_text='Second', message_music='D_VICTOR')


def test_unknown_lookup() -> None:
    """Lookups must be present in the string table."""
    info = MapInfo({'HUSTR_1': 'Level 1'})
    with pytest.raises(MapInfoError, match='Unknown lookup string "HUSTR_2"'):
        info.parse('map MAP02 lookup HUSTR_2')
    with pytest.raises(MapInfoError, match='Unknown lookup string "MISSING"'):
        info.parse('map MAP01 "Level" { music = "$MISSING" }')


def test_flag_masking() -> None:
    """Mutually exclusive flags replace each other."""
    info = MapInfo()
    info.parse('''\
map MAP01 "One" { nojump allowjump allowfreelook nofreelook }
map MAP02 "Two" { specialaction_lowerfloor specialaction_opendoor }
map MAP03 "Three" { specialaction_opendoor specialaction_exitlevel doublesky }
''')
    assert info.find_level('MAP01').flags == LevelFlags.JUMP_YES | LevelFlags.FREELOOK_NO
    assert info.find_level('MAP02').flags == LevelFlags.SPEC_OPEN_DOOR
    assert info.find_level('MAP03').flags == LevelFlags.DOUBLE_SKY


def test_colors() -> None:
    """Test parsing fade colours."""
    info = MapInfo()
    info.parse('''\
map MAP01 "One" { fade = "Dark Green" outsidefog = "#102030" }
map MAP02 "Two"
fade "ff 8 00"
''')
    one = info.find_level('MAP01')
    assert one.fade_color == (255, 0x00, 0x64, 0x00)
    assert one.outside_fog_color == (255, 0x10, 0x20, 0x30)
    two = info.find_level('MAP02')
    assert two.fade_color == (255, 0xFF, 0x88, 0x00)
    assert two.outside_fog_color == NO_OUTSIDE_FOG

    with pytest.raises(MapInfoError, match='Invalid colour "not a colour"'):
        info.parse('map MAP03 "Three" { fade = "not a colour" }')


def test_name_truncation() -> None:
    """Map and lump names are limited to 8 characters, and uppercase."""
    info = MapInfo()
    info.parse('map longmapname "Long" {\ntitlepatch = "wilv_long_patch"\nnext = "map02"\n}')
    level = info.find_level('LONGMAPN')
    assert level.name == 'LONGMAPN'
    assert level.title_patch == 'WILV_LON'
    assert level.next_map == 'MAP02'
    assert info.find_level('longmapname_suffix') is level


@pytest.mark.parametrize('name, num', [
    ('MAP01', 1),
    ('MAP99', 99),
    ('MAP00', 0),
    ('MAP100', 0),
    ('MAPXY', 0),
    ('E1M1', 0),
])
def test_level_num_from_name(name: str, num: int) -> None:
    """MAPxx names set the level number automatically."""
    info = MapInfo()
    info.parse(f'map {name} "Level"')
    assert info.levels[0].level_num == num


def test_level_num_override() -> None:
    """An explicit level number replaces the automatic one."""
    info = MapInfo()
    info.parse('map MAP01 "Level"\nlevelnum 0x10\nmap E2M3 "Other" { levelnum = 7 }')
    assert info.find_level_by_num(16).name == 'MAP01'
    assert info.find_level_by_num(7).name == 'E2M3'
    with pytest.raises(NoLevelError):
        info.find_level_by_num(1)


def test_defaultmap() -> None:
    """The default map only applies to levels later in the same lump."""
    info = MapInfo()
    info.parse('''\
map MAP01 "Before" {}
defaultmap { par = 45 gravity = 400 nojump }
map MAP02 "After" {}
map MAP03 "Override" { par = 60 allowjump }
''')
    info.parse('map MAP04 "Other lump" {}')
    assert info.levels == IsList(
        HasAttributes(name='MAP01', par_time=0, gravity=0.0, flags=LevelFlags.NONE),
        HasAttributes(name='MAP02', par_time=45, gravity=400.0, flags=LevelFlags.JUMP_NO),
        HasAttributes(name='MAP03', par_time=60, gravity=400.0, flags=LevelFlags.JUMP_YES),
        HasAttributes(name='MAP04', par_time=0, gravity=0.0, flags=LevelFlags.NONE),
    )
    # The default isn't shared with the levels.
    info.levels[1].deferred.append(DeferredScript(DeferKind.SUSPEND, 1))
    assert info.levels[2].deferred == []


def test_hexen_hubs() -> None:
    """Once Hexen-style numbered maps are seen, clusters assigned to levels become hubs."""
    info = MapInfo()
    info.parse('map MAP01 "Before"\ncluster 1\n')
    assert info.clusters == []
    info.parse('map 2 "Hexen"\ncluster 2\nmap MAP03 "After"\ncluster 3\n')
    assert info.clusters == IsList(
        HasAttributes(cluster=2, flags=ClusterFlags.HUB),
        HasAttributes(cluster=3, flags=ClusterFlags.HUB),
    )
    assert info.find_cluster(2).is_hub

    # A later definition replaces the flags.
    info.parse('clusterdef 2 { exittext = "Bye" }')
    assert not info.find_cluster(2).is_hub


def test_ignored_blocks() -> None:
    """Episodes, game info and intermissions are parsed, but not stored."""
    info = MapInfo()
    info.parse('''\
clearepisodes
episode MAP01
name "Hell on Earth"
key h
episode E1M1 teaser E2M1 { name = "Shareware" optional }
gameinfo { weapons = "Fist", "Pistol" nested { a = 1 } }
intermission Cast { Image { Background = "BOSSBACK" } }
map MAP01 "Entry" {}
''')
    assert info.levels == IsList(HasAttributes(name='MAP01', level_name='Entry'))
    assert info.clusters == []


def test_errors() -> None:
    """Test various invalid files."""
    info = MapInfo()
    with pytest.raises(MapInfoError, match='Unimplemented top-level type "spam"'):
        info.parse('spam { eggs = 1 }')
    with pytest.raises(MapInfoError, match='Unclosed block'):
        info.parse('map MAP01 "Entry"\n{\n\tnext = "MAP02"\n')
    with pytest.raises(MapInfoError, match='Expected integer'):
        info.parse('map MAP01 "Entry" { par = "soon" }')
    with pytest.raises(MapInfoError, match='Expected floating point'):
        info.parse('map MAP01 "Entry" { gravity = high }')
    with pytest.raises(MapInfoError, match=r'Unexpected "\{" character'):
        info.parse('{ map MAP01 "Entry" }')
    with pytest.raises(MapInfoError, match='Missing string'):
        info.parse('map MAP01')


def test_sample_legacy(datadir: Path) -> None:
    """Parse a complete lump in the original syntax."""
    info = parse_file(datadir, 'legacy.txt')
    assert info.clusters == IsList(HasAttributes(
        cluster=1,
        enter_text=(
            "Once you beat the big badasses and\nclean out the moon base you're\n"
            "supposed to win, aren't you?"
        ),
        message_music='D_READ_M',
        finale_flat='SLIME16',
        flags=ClusterFlags.NONE,
    ))
    assert info.levels == IsList(
        LevelInfo(
            name='MAP01',
            level_name='Entryway',
            level_num=1,
            next_map='MAP02',
            secret_map='MAP31',
            cluster=1,
            sky1='SKY1',
            par_time=30,
            music='D_RUNNIN',
            title_patch='CWILV00',
        ),
        LevelInfo(
            name='MAP02',
            level_name='level 2: underhalls',
            level_num=2,
            next_map='MAP03',
            cluster=1,
            sky1='SKY1',
            fade_color=(255, 0x20, 0x00, 0x40),
            outside_fog_color=(255, 0xFF, 0x80, 0x00),
            par_time=90,
            flags=LevelFlags.SPEC_OPEN_DOOR | LevelFlags.MAP07_SPECIAL | LevelFlags.JUMP_NO,
        ),
    )


def test_sample_hexen(datadir: Path) -> None:
    """Parse a Hexen lump, where levels are numbered."""
    info = parse_file(datadir, 'hexen.txt')
    assert info.hexen_hack
    assert info.clusters == IsList(HasAttributes(
        cluster=1,
        enter_text='Welcome to the Seven Portals.',
        flags=ClusterFlags.HUB,
    ))
    assert info.levels == IsList(
        HasAttributes(
            name='MAP01', level_num=1, level_name='Winnowing Hall', next_map='MAP02',
            sky1='SKY2', sky2='SKY3', cluster=1,
            flags=NUMBERED_MAP_FLAGS | LevelFlags.DOUBLE_SKY,
        ),
        HasAttributes(
            name='MAP02', level_num=2, level_name='Seven Portals', next_map='MAP03',
            sky1='SKY2', sky2='', cluster=1, flags=NUMBERED_MAP_FLAGS,
        ),
    )


def test_sample_modern(datadir: Path) -> None:
    """Parse a complete lump in the braced syntax."""
    info = parse_file(datadir, 'zmapinfo.txt')
    assert info.clusters == IsList(HasAttributes(
        cluster=5,
        enter_text=None,
        exit_text=info.strings['C1TEXT'],
        message_music='D_READ_M',
        finale_flat='FLOOR4_8',
        flags=ClusterFlags.HUB,
    ))
    assert info.levels == IsList(LevelInfo(
        name='E1M1',
        level_name='Hangar',
        level_num=1,
        next_map='E1M2',
        secret_map='E1M9',
        cluster=5,
        sky1='SKY1',
        par_time=30,
        music='D_RUNNIN',
        gravity=400.0,
        air_control=0.5,
        fade_table='FOGMAP',
        # Black is the same as no fog.
        outside_fog_color=NO_OUTSIDE_FOG,
        flags=LevelFlags.FREELOOK_NO | LevelFlags.SPEC_LOWER_FLOOR,
    ))
    # The default is kept until the next lump.
    assert info.default == HasAttributes(
        name='', sky1='SKY1', air_control=0.5, flags=LevelFlags.FREELOOK_YES,
    )


def test_lump_precedence(datadir: Path) -> None:
    """ZMAPINFO lumps replace MAPINFO lumps, if present."""
    with open(datadir / 'legacy.txt', encoding='utf8') as f:
        base = f.read()
    with open(datadir / 'zmapinfo.txt', encoding='utf8') as f:
        zmapinfo = f.read()

    info = MapInfo(load_strings(datadir))
    info.parse_lumps((base, 'base'), [
        ('this is not valid', 'MAPINFO'),
        (zmapinfo, 'zmapinfo'),
        ('map MAP01 "Replaced" {}', 'ZMAPINFO'),
        ('also not valid', 'DEHACKED'),
    ])
    assert [level.name for level in info.levels] == ['MAP01', 'MAP02', 'E1M1']
    assert [cluster.cluster for cluster in info.clusters] == [1, 5]
    assert info.find_level('MAP01').level_name == 'Replaced'

    info = MapInfo(load_strings(datadir))
    info.parse_lumps(None, [
        ('map E1M1 "Shareware"', 'MAPINFO'),
        ('map E1M2 "Nuclear Plant"', 'mapinfo'),
        ('not valid', 'LANGUAGE'),
    ])
    assert [level.level_name for level in info.levels] == ['Shareware', 'Nuclear Plant']


def test_parse_all_logging(caplog: pytest.LogCaptureFixture) -> None:
    """Parsing logs skipped keys, and a summary."""
    info = MapInfo()
    with caplog.at_level(logging.DEBUG, logger='levelinfo'):
        info.parse_all([
            ('map MAP01 "One" { weirdfield = 1 }', 'first'),
            (['cluster 1 ', '{ hub }'], 'second'),
        ])
    assert 'Skipping unknown key "weirdfield" on line 1' in caplog.text
    assert 'Parsed 2 MAPINFO lumps: 1 levels, 1 clusters' in caplog.text


def test_registry_lookup() -> None:
    """Test finding levels and clusters."""
    info = MapInfo()
    assert info.find_level_index('MAP01') is None
    assert info.find_cluster_index(1) is None
    with pytest.raises(NoLevelError, match='MAP01'):
        info.find_level('MAP01')
    with pytest.raises(NoClusterError, match='1'):
        info.find_cluster(1)

    level = info.level_for('e1m1')
    assert level.name == 'E1M1'
    assert info.level_for('E1M1') is level
    assert info.find_level_index('E1m1') == 0
    cluster = info.cluster_for(4)
    assert info.cluster_for(4) is cluster
    assert info.find_cluster_index(4) == 0
    assert repr(info) == '<MapInfo: 1 levels, 1 clusters>'


def test_clear() -> None:
    """Clearing removes levels, clusters and their runtime state."""
    info = MapInfo()
    info.parse('map 1 "Hexen" { cluster = 1 }')
    level = info.levels[0]
    level.snapshot = b'data'
    level.deferred.append(DeferredScript(DeferKind.TERMINATE, 3))

    info.clear_snapshots()
    assert level.snapshot is None
    assert level.deferred != []
    info.remove_deferreds()
    assert level.deferred == []
    assert info.levels == [level]

    level.snapshot = b'data'
    level.deferred.append(DeferredScript(DeferKind.TERMINATE, 3))
    info.clear()
    assert info.levels == []
    assert info.clusters == []
    assert not info.hexen_hack
    assert level.snapshot is None
    assert level.deferred == []


def test_destination() -> None:
    """Destinations must hold the matching record type."""
    level = LevelInfo.default()
    dest = Destination.level(level)
    assert dest.kind is DestKind.LEVEL
    dest.store('par_time', 35)
    dest.commit_flags(0x04)
    assert level.par_time == 35
    assert level.flags == LevelFlags.DOUBLE_SKY

    cluster = ClusterInfo(3)
    Destination.cluster(cluster).commit_flags(1)
    assert cluster.is_hub

    episode = Destination.episode()
    assert episode.record is None
    episode.store('par_time', 35)
    episode.commit_flags(1)

    with pytest.raises(TypeError):
        Destination(DestKind.LEVEL, cluster)
    with pytest.raises(TypeError):
        Destination(DestKind.CLUSTER, level)
    with pytest.raises(TypeError):
        Destination(DestKind.EPISODE, level)


def test_calc_map_name() -> None:
    """Test producing lump names for levels."""
    assert calc_map_name(1, 3, False) == 'E1M3'
    assert calc_map_name(4, 9, False) == 'E4M9'
    assert calc_map_name(0, 3, True) == 'MAP03'
    assert calc_map_name(2, 32, True) == 'MAP32'


@pytest.mark.parametrize('filename', ['legacy.txt', 'hexen.txt', 'zmapinfo.txt'])
def test_export(datadir: Path, filename: str) -> None:
    """Exported lumps parse back to the same levels."""
    info = parse_file(datadir, filename)
    buf = io.StringIO()
    info.export(buf)

    reparsed = MapInfo()
    reparsed.parse(buf.getvalue(), 'exported')
    assert reparsed.levels == info.levels
    assert reparsed.clusters == info.clusters


def test_export_level_num_kept() -> None:
    """Level numbers which differ from the map name survive being exported."""
    info = MapInfo()
    info.parse('''\
map MAP05 "Zero" { levelnum = 0 }
map MAP06 "Six" {}
map MAP07 "Other" { levelnum = 30 }
''')
    buf = io.StringIO()
    info.export(buf)

    reparsed = MapInfo()
    reparsed.parse(buf.getvalue())
    assert [level.level_num for level in reparsed.levels] == [0, 6, 30]
    assert reparsed.levels == info.levels

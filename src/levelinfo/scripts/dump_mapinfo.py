"""Parse MAPINFO lumps, then display the levels and clusters they define.

Lumps are parsed in the order given, so later files modify the levels of earlier ones.
"""
from typing import List
import argparse
import sys

from levelinfo.logger import init_logging
from levelinfo.mapinfo import MapInfo
from levelinfo.strings import StringTable


def main(args: List[str]) -> None:
    """Main script."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "files",
        help="MAPINFO or ZMAPINFO lumps to parse.",
        nargs='+',
    )
    parser.add_argument(
        "-s", "--strings",
        help='a file of KEY = "text" definitions, used to resolve lookups.',
    )
    parser.add_argument(
        "-e", "--export",
        help="write the combined result to this file, in the braced syntax.",
        metavar='OUT',
    )
    result = parser.parse_args(args)
    log = init_logging(main_logger='dump_mapinfo')

    if result.strings:
        with open(result.strings, encoding='utf8') as f:
            strings = StringTable.parse(f)
        log.info('Loaded {} strings from "{}"', len(strings), result.strings)
    else:
        strings = StringTable()

    info = MapInfo(strings)
    sources = []
    for filename in result.files:
        with open(filename, encoding='utf8') as f:
            sources.append((f.read(), filename))
    info.parse_all(sources)

    for cluster in info.clusters:
        print(f'Cluster {cluster.cluster}{" (hub)" if cluster.is_hub else ""}')
    for level in info.levels:
        print(
            f'{level.name:<8} #{level.level_num:<2} {level.level_name or "":<32} '
            f'cluster={level.cluster} next={level.next_map or "-"} '
            f'flags={level.flags.value:#x}'
        )

    if result.export:
        with open(result.export, 'w', encoding='utf8') as f:
            info.export(f)
        log.info('Exported to "{}"', result.export)


if __name__ == '__main__':
    main(sys.argv[1:])

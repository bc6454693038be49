"""
Import a playlist from the command line and print a catalog summary.

Usage:
    python -m aggregator.scripts.import_playlist --file channels.m3u
    python -m aggregator.scripts.import_playlist --url http://host/list.m3u8
    python -m aggregator.scripts.import_playlist --xtream http://host:8080 --username u --password p
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from aggregator.errors import AggregatorError
from aggregator.models.channel import XtreamCredentials
from aggregator.services.cache import get_cache
from aggregator.services.deduplicator import count_content
from aggregator.services.playlists import PlaylistService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Import an IPTV playlist")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Path to an M3U/M3U8 file")
    source.add_argument("--url", help="URL of an M3U/M3U8 playlist")
    source.add_argument("--xtream", metavar="SERVER", help="Xtream Codes server URL")
    parser.add_argument("--username", help="Xtream username")
    parser.add_argument("--password", help="Xtream password")
    parser.add_argument("--name", help="Playlist name")
    parser.add_argument("--expand-series", action="store_true", help="Import every series episode")
    args = parser.parse_args(argv)

    if args.xtream and not (args.username and args.password):
        parser.error("--xtream requires --username and --password")

    service = PlaylistService(await get_cache())

    try:
        if args.file:
            result = await service.import_file(args.file, args.name)
        elif args.url:
            result = await service.import_url(args.url, args.name)
        else:
            credentials = XtreamCredentials(
                server_url=args.xtream,
                username=args.username,
                password=args.password,
            )
            result = await service.import_xtream(credentials, name=args.name, expand_series=args.expand_series)
    except AggregatorError as e:
        logger.error(f"Import failed: {e.message}")
        return 1

    counts = count_content(result.playlist.channels)

    print("\n" + "=" * 50)
    print(result.message)
    print("=" * 50)
    print(f"Playlist id:  {result.playlist.id}")
    print(f"Categories:   {len(result.playlist.categories)}")
    print(f"Channels:     {counts.channels}")
    print(f"Movies:       {counts.movies}")
    print(f"Series:       {counts.series}")
    for warning in result.warnings:
        print(f"Warning: {warning}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

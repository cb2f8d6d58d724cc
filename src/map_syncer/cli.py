import sys

from .config import load_settings
from .errors import MapSyncerError
from .logging_utils import get_logger
from .remote_zip import list_members
from .repack import excluded_extensions, repack
from .watcher import run_watcher

logger = get_logger(__name__)


def _usage(prog: str) -> None:
    print("map-syncer - remote ZIP indexing and VPK trimming.", file=sys.stderr)
    print("\nUsage:", file=sys.stderr)
    print("  List the files inside a remote ZIP archive:", file=sys.stderr)
    print(f"    {prog} list <url>", file=sys.stderr)
    print("\n  Copy a VPK without the excluded file types:", file=sys.stderr)
    print(f"    {prog} repack <input_vpk> <output_vpk>", file=sys.stderr)
    print("\n  Trim every VPK dropped into a directory:", file=sys.stderr)
    print(f"    {prog} watch [directory]", file=sys.stderr)


def main(argv=None) -> int:
    """Main command-line interface handler."""
    args = list(sys.argv if argv is None else argv)
    prog = args[0] if args else "map-syncer"
    if len(args) < 2:
        _usage(prog)
        return 1

    settings = load_settings()
    is_excluded = excluded_extensions(*settings.excluded_extensions)
    command = args[1]

    try:
        if command == "list" and len(args) == 3:
            for name in list_members(args[2], timeout=settings.http_timeout):
                print(name)
        elif command == "repack" and len(args) == 4:
            report = repack(args[2], args[3], is_excluded)
            print(f"kept {len(report.entries)}, removed {report.removed}, data {report.data_byte_size} bytes")
        elif command == "watch" and len(args) in (2, 3):
            directory = args[2] if len(args) == 3 else settings.watch_dir
            run_watcher(directory, is_excluded, cooldown=settings.watch_cooldown)
        else:
            print(f"Error: Invalid command or arguments for '{command}'.", file=sys.stderr)
            _usage(prog)
            return 1
    except MapSyncerError as exc:
        logger.error("%s failed: %s", command, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

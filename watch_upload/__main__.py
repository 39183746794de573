"""Entry point for Watch Upload.

Usage:
    python -m watch_upload                  Run the watch folder service
    python -m watch_upload --config FILE    Use FILE instead of the default config
"""

import argparse
import sys
from pathlib import Path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="watch-upload",
        description="Watch folders for new files and upload them",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Path to config.json (default: platform config directory)",
    )
    return parser.parse_args(argv)


def main() -> None:
    """Parse arguments and run the service in the foreground."""
    args = parse_args()

    from watch_upload.service import run_foreground

    sys.exit(run_foreground(args.config))


if __name__ == "__main__":
    main()

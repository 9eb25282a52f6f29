"""Entry point for File Replicator.

Usage:
    python -m replicator     Replicate the file described by ./replicator.conf
                             (a default file is written on first run)
"""

import sys


def main() -> None:
    """Run the replicator and exit with its status."""
    from replicator.app import Replicator

    sys.exit(Replicator().run())


if __name__ == "__main__":
    main()

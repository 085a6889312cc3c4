"""
WeekTally: Entry Point.

`python main.py <command>` runs the command line interface.
"""

import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from weektally.cli import main

if __name__ == "__main__":
    sys.exit(main())

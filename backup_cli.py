#!/usr/bin/env python
"""Run a backup, restore or listing from cron or a shell."""

import sys
import os

# Add parent directory to path for development
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from archivist.cli import main


if __name__ == "__main__":
    main()

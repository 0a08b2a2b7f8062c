#!/usr/bin/env python3
"""
Record sync tool, runnable from a source checkout without installing.

Usage:
    ./scripts/sync_records.py upload past_due_2024-05-01.xlsx
    ./scripts/sync_records.py sync --domain quotes --dry-run
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from recordsync.cli import main

if __name__ == "__main__":
    sys.exit(main())

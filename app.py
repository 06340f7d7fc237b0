#!/usr/bin/env python3
"""
ETRM Pipeline - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
One executable entry point for every pipeline service. Each
process runs one mode:

    python app.py --mode importer
    python app.py --mode import-once --kind trades
    python app.py --mode normalizer
    python app.py --mode aggregator

Local single-process run with in-memory adapters:

    python app.py --mode importer --in-memory --log-format text

Configuration comes from the environment (see core.config);
a .env file in the working directory is loaded first.

============================================================
"""

import sys

from orchestrator.cli import main


if __name__ == "__main__":
    sys.exit(main())

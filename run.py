#!/usr/bin/env python3
"""Convenience runner for the ShipShape sync tool.

Usage:
    python run.py stats track.json
"""
import sys

from shipshape_sync.main import main

if __name__ == "__main__":
    sys.exit(main())

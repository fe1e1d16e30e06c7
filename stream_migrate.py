#!/usr/bin/env python3
"""
MongoDB to MongoDB stream
Launcher for running from a checkout without installing the package
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from mongostream.cli import main

if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Heimdall Runner

Runs the control panel straight from a source checkout.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from heimdall.cli import main

if __name__ == "__main__":
    sys.exit(main())

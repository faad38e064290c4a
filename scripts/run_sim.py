#!/usr/bin/env python3
"""
Simulation launcher script.

Collects live pump.fun listings for the configured number of minutes, then
replays them through the paper portfolio. No real orders are placed.
"""

import asyncio
import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from memebot.runner.pipeline import main


if __name__ == "__main__":
    try:
        asyncio.run(main(["--config", "configs/default.yaml", *sys.argv[1:]]))
    except KeyboardInterrupt:
        print("\nSimulation stopped by user.")
        sys.exit(0)

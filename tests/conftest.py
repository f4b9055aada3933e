"""
Pytest configuration and fixtures for automod tests.
"""

import os
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent

# Read the repository config regardless of the directory pytest is started from
os.environ.setdefault("AUTOMOD_CONFIG", str(ROOT / "config" / "app_config.yml"))

# Add src directory to path so imports work
src_path = ROOT / "src"
sys.path.insert(0, str(src_path))

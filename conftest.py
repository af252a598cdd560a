"""
Root pytest configuration.

This file exists to declare pytest plugins at the root level, which is required
by pytest 8.x+ to ensure consistent plugin loading across all test directories.
"""

import sys
from pathlib import Path

# Explicitly enable pytest-asyncio at the root level
pytest_plugins = ("pytest_asyncio",)

# Ensure src/ is on sys.path for local test runs without installation
_SRC = Path(__file__).resolve().parent / "src"
if _SRC.exists() and str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

# tests/conftest.py
import sys
from pathlib import Path

import pytest
from loguru import logger

# Add project root to sys.path so the top-level modules import without installing
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_logger():
    """The CLIs replace loguru sinks; restore a plain stderr sink after each test."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Keep cached config and the JSON log file from leaking between tests."""

    from casepulse.config import get_config

    monkeypatch.delenv("JSON_LOG_FILE", raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()

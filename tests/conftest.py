"""Session setup shared by every test.

semindex is imported from this checkout's src/ tree, and no test reads the
user's ~/.config/semindex/config.yaml.
"""

import sys
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def pytest_configure(config: pytest.Config) -> None:
    if str(SRC_DIR) not in sys.path:
        sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def no_global_config(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    missing = tmp_path_factory.mktemp("home") / "config.yaml"
    monkeypatch.setattr("semindex.config.loader.GLOBAL_CONFIG_PATH", missing)

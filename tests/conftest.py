from pathlib import Path

import pytest

from tests.fakes import configure_temp_paths


@pytest.fixture(autouse=True)
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every data path at a per-test directory."""

    return configure_temp_paths(tmp_path, monkeypatch)

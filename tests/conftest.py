import json

import pytest

from carmedia import config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point every test at an empty config.json so host config never leaks in."""
    path = tmp_path / "config.json"
    path.write_text("{}")
    monkeypatch.setenv("CARMEDIA_CONFIG", str(path))
    monkeypatch.delenv("NOTIFY_SOCKET", raising=False)
    config.reload_config()
    yield path
    config._config = None


@pytest.fixture
def write_config(isolated_config):
    def _write(data):
        isolated_config.write_text(json.dumps(data))
        return config.reload_config()
    return _write

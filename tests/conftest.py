import pytest

from graft.config.loader import CONFIG_ENV_VAR, ENV_OVERRIDES


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch):
    """Point graft at an empty per-test config file and drop env overrides.

    Tests must never read the developer's own ``~/.config/graft`` file or
    pick up an exported API key.
    """
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "graft-config" / "config.json"))
    for env_var in ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)
    yield

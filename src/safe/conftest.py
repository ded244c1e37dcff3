import pytest

import safe.commands
from safe._output import TestBackend


@pytest.fixture(autouse=True)
def output(monkeypatch):
    from safe._output import output

    monkeypatch.setattr(output, "backend", TestBackend())
    monkeypatch.setattr(output, "enable_debug", False)
    return output


@pytest.fixture(autouse=True)
def home(monkeypatch, tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("SAFE_CONFIG", str(home / ".saferc"))
    for name in ["VAULT_ADDR", "VAULT_TOKEN", "VAULT_SKIP_VERIFY", "DEBUG"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(safe.commands, "workers", None)
    return home

import os
import stat

import pytest
import yaml

from safe import ConfigurationError
from safe.rc import Config, connect, saferc_path, upgrade
from safe.vault import Vault


def write_config(home, data):
    path = home / ".saferc"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_saferc_path_honours_environment(home, monkeypatch):
    assert saferc_path() == str(home / ".saferc")
    monkeypatch.delenv("SAFE_CONFIG")
    assert saferc_path() == os.path.join(str(home), ".saferc")


def test_missing_file_is_empty_config(home):
    config = Config.load()
    assert config.target == ""
    assert config.targets == {}
    assert config.url() == ""


def test_load_current_version(home):
    write_config(home, {
        "version": "2",
        "target": "prod",
        "targets": {"prod": {"url": "https://vault", "token": "s.1"}}})
    config = Config.load()
    assert config.target == "prod"
    assert config.url() == "https://vault"


def test_upgrade_legacy_config():
    assert upgrade({
        "Current": "prod",
        "Targets": {"https://vault": "s.1"},
        "Aliases": {"prod": "https://vault", "dev": "http://dev"},
    }) == {
        "version": "2",
        "target": "prod",
        "targets": {
            "prod": {"url": "https://vault", "token": "s.1"},
            "dev": {"url": "http://dev"},
        },
    }


def test_legacy_config_is_upgraded_on_disk(home):
    path = write_config(home, {
        "Current": "prod",
        "Targets": {"https://vault": "s.1"},
        "Aliases": {"prod": "https://vault"}})
    config = Config.load()
    assert config.credentials() == ("https://vault", "s.1", False)
    with open(path) as f:
        assert yaml.safe_load(f)["version"] == "2"


def test_malformed_config(home):
    (home / ".saferc").write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        Config.load()


def test_unparseable_config(home):
    (home / ".saferc").write_text("targets: [unclosed\n")
    with pytest.raises(ConfigurationError) as e:
        Config.load()
    assert str(e.value).startswith("Could not parse")


def test_write_is_private(home):
    config = Config.load()
    config.set_target("prod", "https://vault")
    config.set_token("s.2")
    config.write()
    path = home / ".saferc"
    assert stat.S_IMODE(os.stat(str(path)).st_mode) == 0o600
    reloaded = Config.load()
    assert reloaded.target == "prod"
    assert reloaded.targets["prod"] == {"url": "https://vault", "token": "s.2"}


def test_set_current_requires_known_alias(home):
    config = Config.load()
    with pytest.raises(ConfigurationError) as e:
        config.set_current("nope")
    assert str(e.value) == "Unknown target 'nope'"


def test_set_token_requires_target(home):
    with pytest.raises(ConfigurationError):
        Config.load().set_token("s.1")


def test_environment_wins_over_target(home, monkeypatch):
    config = Config(target="prod", targets={
        "prod": {"url": "https://vault", "token": "s.1",
                 "skip_verify": True}})
    monkeypatch.setenv("VAULT_ADDR", "http://other")
    monkeypatch.setenv("VAULT_TOKEN", "s.env")
    assert config.credentials() == ("http://other", "s.env", True)


def test_token_falls_back_to_vault_token_file(home):
    (home / ".vault-token").write_text("s.file\n")
    config = Config(target="prod", targets={"prod": {"url": "https://v"}})
    assert config.credentials() == ("https://v", "s.file", False)


def test_unknown_current_target(home):
    config = Config(target="gone", targets={})
    with pytest.raises(ConfigurationError):
        config.credentials()


def test_connect_requires_url(home, output):
    with pytest.raises(ConfigurationError) as e:
        connect(Config.load())
    assert str(e.value) == "You are not targeting a Vault."
    e.value.report()
    assert "failed: You are not targeting a Vault." in output.backend.output
    assert "safe target" in output.backend.output


def test_connect_requires_token(home, monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault")
    with pytest.raises(ConfigurationError) as e:
        connect(Config.load())
    assert str(e.value) == "You are not authenticated to a Vault."


def test_connect(home, monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault")
    monkeypatch.setenv("VAULT_TOKEN", "s.env")
    vault = connect(Config.load())
    assert isinstance(vault, Vault)
    assert vault.url == "https://vault"
    assert vault.session.headers["X-Vault-Token"] == "s.env"

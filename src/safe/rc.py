"""The targets file, `~/.saferc`.

.. code-block:: yaml

    version: "2"
    target: prod
    targets:
      prod:
        url: https://vault.example.com
        token: s.xxxxx
        skip_verify: false

"""
import os
import os.path

import yaml

from safe import ConfigurationError
from safe.vault import Vault


def saferc_path():
    return os.environ.get("SAFE_CONFIG") or os.path.expanduser("~/.saferc")


def vault_token_path():
    return os.path.expanduser("~/.vault-token")


def upgrade(v1):
    """Convert a legacy version 1 mapping to the current layout.

    Version 1 files stored tokens keyed by URL and mapped aliases to URLs
    separately.

    """
    tokens = v1.get("Targets") or {}
    targets = {}
    for alias, url in (v1.get("Aliases") or {}).items():
        targets[alias] = {"url": url}
        if tokens.get(url):
            targets[alias]["token"] = tokens[url]
    return {
        "version": "2",
        "target": v1.get("Current") or "",
        "targets": targets,
    }


class Config(object):
    """Named targets and the currently selected one."""

    def __init__(self, path=None, target="", targets=None):
        self.path = path or saferc_path()
        self.target = target
        self.targets = targets if targets is not None else {}

    @classmethod
    def load(cls, path=None):
        path = path or saferc_path()
        if not os.path.exists(path):
            return cls(path)
        with open(path) as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError.from_context(
                    "Could not parse {}".format(path), hint=str(e))
        if not isinstance(raw, dict):
            raise ConfigurationError.from_context(
                "Malformed targets file {}".format(path))

        upgraded = str(raw.get("version") or "1") == "1"
        if upgraded:
            raw = upgrade(raw)
        targets = raw.get("targets") or {}
        if not isinstance(targets, dict):
            raise ConfigurationError.from_context(
                "Malformed targets file {}".format(path),
                hint="`targets` must be a mapping of alias to target.")

        self = cls(path, raw.get("target") or "", targets)
        if upgraded:
            self.write()
        return self

    def as_dict(self):
        return {
            "version": "2",
            "target": self.target,
            "targets": self.targets,
        }

    def write(self):
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            yaml.safe_dump(self.as_dict(), f, default_flow_style=False)
        os.chmod(self.path, 0o600)

    def set_current(self, alias):
        if alias not in self.targets:
            raise ConfigurationError.from_context(
                "Unknown target '{}'".format(alias))
        self.target = alias

    def set_target(self, alias, url, skip_verify=False):
        self.targets[alias] = {"url": url}
        if skip_verify:
            self.targets[alias]["skip_verify"] = True
        self.target = alias

    def set_token(self, token):
        if not self.target:
            raise ConfigurationError.from_context("No target selected")
        if self.target not in self.targets:
            raise ConfigurationError.from_context(
                "Unknown target '{}'".format(self.target))
        self.targets[self.target]["token"] = token

    def current(self):
        return self.targets.get(self.target) or {}

    def url(self):
        return self.current().get("url", "")

    def credentials(self):
        """Return `(url, token, skip_verify)` for the next connection.

        `VAULT_ADDR` and `VAULT_TOKEN` win over the current target.
        Without a token, the one the Vault CLI leaves in
        `~/.vault-token` is used.

        """
        if self.target and self.target not in self.targets:
            raise ConfigurationError.from_context(
                "Current target vault '{}' not found in {}".format(
                    self.target, self.path))
        target = self.current()
        url = os.environ.get("VAULT_ADDR") or target.get("url") or ""
        token = os.environ.get("VAULT_TOKEN") or target.get("token") or ""
        if not token and os.path.exists(vault_token_path()):
            with open(vault_token_path()) as f:
                token = f.read().strip()
        return url, token, bool(target.get("skip_verify"))


def connect(config, timeout=None):
    """Return a `Vault` for the effective credentials of `config`."""
    url, token, skip_verify = config.credentials()
    if not url:
        raise ConfigurationError.from_context(
            "You are not targeting a Vault.",
            hint="Try `safe target http://your-vault alias`\n"
            " or `safe target alias`")
    if not token:
        raise ConfigurationError.from_context(
            "You are not authenticated to a Vault.",
            hint="Export VAULT_TOKEN or store a token in ~/.vault-token")
    return Vault(url, token, skip_verify=skip_verify, timeout=timeout)

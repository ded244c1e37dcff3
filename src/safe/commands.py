"""Implementation of the `safe` subcommands.

Every command receives the parsed arguments of its subparser as keyword
arguments. Results go to stdout, everything meant for the person at the
terminal goes through `output`.

"""
import getpass
import json
import sys

from safe import SafeError, SecretNotFound, UsageError
from safe._output import output
from safe.path import sort_paths
from safe.rc import Config, connect
from safe.secret import Secret
from safe.tree import NodeKind, build_tree

# Set from the global `--jobs` option.
workers = None


def _vault():
    return connect(Config.load())


def _confirm(question):
    answer = input("{} (y/n) ".format(question)).strip()
    return answer in ("y", "yes")


def _prompt(label, confirm):
    if not confirm:
        return getpass.getpass("{}: ".format(label))
    while True:
        first = getpass.getpass("{} [hidden]: ".format(label))
        second = getpass.getpass("{} [confirm]: ".format(label))
        if first and first == second:
            return first
        output.line("oops, try again (Ctrl-C to cancel)", yellow=True)


def parse_key_value(arg, quiet=False):
    """Split `key=value` or `key@file` into `(key, value, missing)`.

    `missing` tells the caller to prompt for the value. `key@-` reads the
    value from standard input.

    """
    if "=" in arg:
        key, value = arg.split("=", 1)
        if value and not quiet:
            output.line("{}: {}".format(key, value), green=True)
        return key, value, False
    if "@" in arg:
        key, filename = arg.split("@", 1)
        if not filename:
            raise SafeError.from_context(
                "No file specified: expecting {}@<filename>".format(key))
        if filename == "-":
            value = sys.stdin.read()
            if not quiet:
                output.line("{}: <$stdin".format(key))
            return key, value, False
        try:
            with open(filename) as f:
                value = f.read()
        except OSError as e:
            raise SafeError.from_context(
                "Failed to read contents of {}: {}".format(filename, e))
        if not quiet:
            output.line("{}: <{}".format(key, filename))
        return key, value, False
    return arg, "", True


def _update(path, pairs, confirm, no_clobber):
    vault = _vault()
    try:
        secret = vault.read(path)
    except SecretNotFound:
        secret = Secret()
    for arg in pairs:
        key, value, missing = parse_key_value(arg)
        if missing:
            value = _prompt(key, confirm)
        secret.set(key, value, skip_if_exists=no_clobber)
    vault.write(path, secret)


# Targets


def targets():
    config = Config.load()
    if not config.targets:
        output.line("No targets configured.")
        return
    wide = max(len(name) for name in config.targets)
    for name in sorted(config.targets):
        url = config.targets[name].get("url", "")
        if name == config.target:
            output.line("(*) {}\t{}".format(name.ljust(wide), url),
                        green=True)
        else:
            output.line("    {}\t{}".format(name.ljust(wide), url))


def target(args, token):
    config = Config.load()
    if not args and not token:
        if not config.target:
            output.line("No Vault currently targeted", red=True)
        else:
            output.line("Currently targeting {} at {}".format(
                config.target, config.url()))
        return
    if len(args) == 1:
        config.set_current(args[0])
    elif len(args) == 2:
        # Both `target alias url` and `target url alias` are accepted.
        first, second = args
        if second.startswith(("http://", "https://")):
            config.set_target(first, second)
        else:
            config.set_target(second, first)
    elif args:
        raise UsageError.from_context("target [-t] [vault-address] name")
    if token:
        config.set_token(_prompt("Token", confirm=False))
    output.line("Now targeting {} at {}".format(config.target, config.url()))
    config.write()


def env():
    url, token, _ = Config.load().credentials()
    output.tabular("VAULT_ADDR", url)
    output.tabular("VAULT_TOKEN", token)


# Secrets


def get(paths):
    vault = _vault()
    for path in paths:
        secret = vault.read(path)
        print("--- # {}".format(path))
        print(secret.yaml())


def set_secret(path, pairs, no_clobber):
    _update(path, pairs, True, no_clobber)


def paste(path, pairs, no_clobber):
    _update(path, pairs, False, no_clobber)


def paths(paths, keys):
    vault = _vault()
    for path in paths:
        tree = build_tree(vault, path, fetch_keys=keys, workers=workers)
        for name in tree.paths():
            print(name)


def tree(paths, keys, hide_secrets):
    vault = _vault()
    for path in paths or ["secret"]:
        result = build_tree(vault, path, fetch_keys=keys, workers=workers)
        sys.stdout.write(result.render(
            colour=sys.stdout.isatty(), show_keys=not hide_secrets))


def _recursive_ok(command, recursive, force, args):
    if not recursive or force:
        return True
    if _confirm("Are you sure you wish to recursively {} {}?".format(
            command, " ".join(args))):
        return True
    output.line("Aborting...")
    return False


def delete(paths, recursive, force):
    if not _recursive_ok("delete", recursive, force, paths):
        return
    vault = _vault()
    for path in paths:
        if recursive:
            vault.delete_tree(path, workers=workers)
        else:
            vault.delete(path)


def copy(oldpath, newpath, recursive, force, no_clobber):
    if not _recursive_ok("copy", recursive, force, [oldpath, newpath]):
        return
    vault = _vault()
    if recursive:
        vault.move_copy_tree(
            oldpath, newpath,
            lambda old, new: vault.copy(old, new, no_clobber),
            skip_if_exists=no_clobber, workers=workers)
    else:
        vault.copy(oldpath, newpath, skip_if_exists=no_clobber)


def move(oldpath, newpath, recursive, force, no_clobber):
    if not _recursive_ok("move", recursive, force, [oldpath, newpath]):
        return
    vault = _vault()
    if recursive:
        vault.move_copy_tree(
            oldpath, newpath,
            lambda old, new: vault.move(old, new, no_clobber),
            skip_if_exists=no_clobber, workers=workers)
    else:
        vault.move(oldpath, newpath, skip_if_exists=no_clobber)


# Bulk transfer


def export(paths):
    vault = _vault()
    found = []
    for path in paths:
        tree = build_tree(vault, path, workers=workers)
        if tree.kind in (NodeKind.SECRET, NodeKind.DIR_AND_SECRET):
            found.append(tree.name.rstrip("/"))
        found.extend(tree.secrets())
    data = {}
    for path in sort_paths(found):
        data[path] = vault.read(path).data
    print(json.dumps(data))


def import_secrets():
    try:
        data = json.load(sys.stdin)
    except ValueError as e:
        raise SafeError.from_context(
            "Could not read export data from standard input", hint=str(e))
    if not isinstance(data, dict):
        raise SafeError.from_context(
            "Export data must map paths to secrets")
    vault = _vault()
    for path, values in data.items():
        if not isinstance(values, dict):
            raise SafeError.from_context(
                "Export data for `{}` is not a map of keys to "
                "values".format(path))
        vault.write(path, Secret(values))
        output.line("wrote {}".format(path))


# Administration


def status():
    vault = _vault()
    if vault.seal_status().get("sealed"):
        output.line("{}: SEALED".format(vault.url), cyan=True)
    else:
        output.line("{}: unsealed".format(vault.url), green=True)


def seal():
    vault = _vault()
    if vault.seal():
        output.line("Sealed the Vault at {}".format(vault.url))
    else:
        output.line("{} is a standby node, not sealing it".format(
            vault.url), yellow=True)


def unseal():
    vault = _vault()
    state = vault.seal_status()
    if not state.get("sealed"):
        output.line("Vault is already unsealed; taking no action.")
        return
    keys = [_prompt("Seal Key #{}".format(i + 1), confirm=False)
            for i in range(int(state.get("t") or 1))]
    state = vault.unseal(keys)
    if state.get("sealed"):
        raise SafeError.from_context(
            "The Vault is still sealed",
            hint="{} of {} keys were accepted".format(
                state.get("progress", 0), state.get("t", len(keys))))
    output.line("Unsealed the Vault at {}".format(vault.url))


def curl(method, path, data):
    vault = _vault()
    body = " ".join(data).encode("utf-8") or None
    response = vault.curl(method.upper(), path, data=body)
    print("HTTP {} {}".format(response.status_code, response.reason))
    for name, value in response.headers.items():
        print("{}: {}".format(name, value))
    print()
    print(response.text)

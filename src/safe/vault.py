"""HTTP/JSON client for the Vault key-value API."""
import logging
import os
import threading

import requests

from safe import (
    KeyNotFound,
    NotASecret,
    NotFound,
    SafeError,
    SecretNotFound,
    VaultError,
)
from safe._output import output
from safe.path import canonicalize, parse_path, path_has_key
from safe.secret import Secret
from safe.tree import NodeKind, build_tree

logger = logging.getLogger(__name__)

# Answers of `sys/internal/ui/mounts` that mean "no mount metadata here";
# older servers do not know the endpoint at all.
_NO_MOUNT_INFO = (400, 403, 404, 405)


def skip_verify_from_environment():
    return os.environ.get("VAULT_SKIP_VERIFY", "") != ""


def decode_error_response(response):
    try:
        raw = response.json()
    except ValueError:
        return "Received non-200 with non-JSON payload:\n{}".format(
            response.text)
    if not isinstance(raw, dict) or "errors" not in raw:
        return "Received non-200 with no error messages:\n{}".format(raw)
    errors = raw["errors"]
    if not isinstance(errors, list):
        return ("Received unexpected format of Vault error messages:\n"
                "{}".format(errors))
    return "\n".join(e for e in errors if isinstance(e, str))


def kv_api_path(path, mount, version, section):
    """Rewrite `path` for the KV engine `version` mounted at `mount`.

    Version 2 mounts keep secrets below `<mount>data/` and the listing and
    deletion endpoints below `<mount>metadata/`.

    """
    if version != 2:
        return path
    rest = path[len(mount):] if (path + "/").startswith(mount) else path
    return mount + section + "/" + rest


class Vault(object):
    """A connection to one Vault server.

    Implements what the tree builder needs (`read`, `list`, `mounts`)
    plus writing, deleting, copying and moving secrets.

    """

    def __init__(self, url, token=None, skip_verify=False, timeout=None,
                 session=None):
        self.url = url.rstrip("/")
        self.token = token
        self.verify = not (skip_verify or skip_verify_from_environment())
        self.timeout = timeout
        self._session = session
        if session is not None:
            self._prepare(session)
        self._local = threading.local()
        self._mounts = {}
        self._mounts_lock = threading.Lock()

    def _prepare(self, session):
        if self.token:
            session.headers["X-Vault-Token"] = self.token
        session.verify = self.verify
        return session

    @property
    def session(self):
        """The HTTP session of the calling thread.

        Every thread gets its own session unless one was passed in.

        """
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = self._prepare(requests.Session())
        return session

    def __repr__(self):
        return "<Vault {}>".format(self.url)

    # Raw HTTP

    def curl(self, method, path, json=None, params=None, data=None):
        url = "{}/v1/{}".format(self.url, path.lstrip("/"))
        logger.debug("%s %s", method, url)
        response = self.session.request(
            method, url, json=json, params=params, data=data,
            timeout=self.timeout)
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    def _call(self, method, path, not_found=None, **kw):
        response = self.curl(method, path, **kw)
        if response.status_code == 404 and not_found is not None:
            raise SecretNotFound.from_context(not_found)
        if response.status_code >= 400:
            raise VaultError.from_context(
                response.status_code,
                decode_error_response(response),
                response.url)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise VaultError.from_context(
                response.status_code,
                "Received invalid JSON '{}' from Vault".format(response.text),
                response.url)

    # Mount handling

    def mount_info(self, path):
        """Return `(mount, kv_version)` for the mount holding `path`."""
        path = canonicalize(path)
        with self._mounts_lock:
            for mount, version in self._mounts.items():
                if (path + "/").startswith(mount):
                    return mount, version

        mount, version = path.split("/", 1)[0] + "/", 1
        if path:
            response = self.curl("GET", "sys/internal/ui/mounts/" + path)
            if response.status_code < 400:
                data = (response.json() or {}).get("data") or {}
                mount = data.get("path") or mount
                options = data.get("options") or {}
                version = int(options.get("version") or 1)
            elif response.status_code not in _NO_MOUNT_INFO:
                raise VaultError.from_context(
                    response.status_code,
                    decode_error_response(response),
                    response.url)

        with self._mounts_lock:
            self._mounts[mount] = version
        return mount, version

    def mounts(self, kind=""):
        """Return the names of all mounts of `kind` (all if empty)."""
        body = self._call("GET", "sys/mounts") or {}
        result = []
        for name, mount in body.items():
            # Newer servers repeat the listing below `data` next to
            # request metadata; only real mount entries carry a type.
            if not isinstance(mount, dict):
                continue
            if not isinstance(mount.get("type"), str):
                continue
            if kind and mount["type"] != kind:
                continue
            result.append(name.rstrip("/") + "/")
        return result

    # Seal administration

    def seal_status(self):
        return self._call("GET", "sys/seal-status") or {}

    def seal(self):
        """Seal the server. Returns False for a standby node."""
        try:
            self._call("PUT", "sys/seal")
        except VaultError as e:
            if e.status == 500 and \
                    "cannot seal when in standby mode" in e.message:
                return False
            raise
        return True

    def unseal(self, keys):
        """Start a new unseal attempt with `keys`, return the seal status."""
        status = self._call("PUT", "sys/unseal", json={"reset": True}) or {}
        for key in keys:
            status = self._call("PUT", "sys/unseal", json={"key": key}) or {}
        return status

    # Remote-client contract

    def read(self, path):
        """Return the `Secret` at `path`, or only its key for `path:key`."""
        path, key = parse_path(path)
        secret = self._read_secret(path)
        if not key:
            return secret
        if not secret.has(key):
            raise KeyNotFound.from_context(path, key)
        return Secret({key: secret.get(key)})

    def _read_secret(self, path):
        mount, version = self.mount_info(path)
        body = self._call(
            "GET", kv_api_path(path, mount, version, "data"),
            not_found=path) or {}
        data = body.get("data") or {}
        if version == 2:
            # Deleted versions answer with `data: null`.
            data = data.get("data")
            if data is None:
                raise SecretNotFound.from_context(path)
        return Secret(data)

    def list(self, path):
        """Return the entries directly below `path`.

        Folders are suffixed with a single `/`, secrets are not.

        """
        path = canonicalize(path)
        mount, version = self.mount_info(path)
        body = self._call(
            "GET", kv_api_path(path, mount, version, "metadata"),
            not_found=path, params={"list": "true"}) or {}
        return list((body.get("data") or {}).get("keys") or [])

    # Writing

    def write(self, path, secret):
        path = canonicalize(path)
        if ":" in path:
            raise SafeError.from_context(
                "cannot write to paths in /path:key notation")
        if secret.empty():
            return self.delete_if_present(path)
        self._write_secret(path, secret)

    def _write_secret(self, path, secret):
        mount, version = self.mount_info(path)
        payload = {"data": secret.data} if version == 2 else secret.data
        self._call(
            "POST", kv_api_path(path, mount, version, "data"),
            not_found=path, json=payload)

    def err_if_folder(self, path):
        try:
            self.list(path)
        except NotFound:
            return
        raise NotASecret.from_context(path)

    def verify_secret_exists(self, path):
        try:
            self.read(path)
        except NotFound:
            self.err_if_folder(parse_path(path)[0])
            raise

    def _delete_secret(self, path):
        mount, version = self.mount_info(path)
        self._call(
            "DELETE", kv_api_path(path, mount, version, "metadata"),
            not_found=path)

    def delete(self, path):
        """Remove the secret at `path`, or one key with `path:key`.

        A secret loses its last key by being removed entirely.

        """
        path = canonicalize(path)
        self.verify_secret_exists(path)
        if not path_has_key(path):
            self._delete_secret(path)
            return

        secret_path, key = parse_path(path)
        secret = self.read(secret_path)
        if not secret.delete(key):
            raise KeyNotFound.from_context(secret_path, key)
        if secret.empty():
            self._delete_secret(secret_path)
        else:
            self.write(secret_path, secret)

    def delete_if_present(self, path):
        secret_path, _ = parse_path(path)
        try:
            self.read(secret_path)
        except SecretNotFound:
            return
        try:
            self.delete(path)
        except KeyNotFound:
            pass

    def delete_tree(self, root, workers=None):
        """Delete every secret below `root`, then `root` itself."""
        root = canonicalize(root)
        if not root:
            raise SafeError.from_context(
                "Refusing to recursively delete everything")
        tree = build_tree(self, root, workers=workers)
        for path in tree.secrets():
            self.delete(path)
        if tree.kind in (NodeKind.SECRET, NodeKind.DIR_AND_SECRET):
            self.delete(root)

    # Copying and moving

    def copy(self, oldpath, newpath, skip_if_exists=False):
        """Copy a secret, or a single key, to a new location.

        `secret:key -> secret:key` copies one key and
        `secret:key -> secret` keeps the key name; copying a whole secret
        into a single key is refused. Returns whether anything was written.

        """
        oldpath = canonicalize(oldpath)
        newpath = canonicalize(newpath)
        self.verify_secret_exists(oldpath)

        if skip_if_exists:
            try:
                self.read(newpath)
            except NotFound:
                pass
            else:
                output.warn(
                    "Cowardly refusing to copy/move data into {}, as that "
                    "would clobber existing data".format(newpath))
                return False

        src_path, src_key = parse_path(oldpath)
        dst_path, dst_key = parse_path(newpath)

        if not src_key:
            if dst_key:
                raise SafeError.from_context(
                    "Cannot move full secret `{}` into specific key "
                    "`{}`".format(oldpath, newpath))
            self.write(dst_path, self.read(src_path))
            return True

        src = self.read(oldpath)
        try:
            dst = self.read(dst_path)
        except SecretNotFound:
            dst = Secret()
        dst.set(dst_key or src_key, src.get(src_key))
        self.write(dst_path, dst)
        return True

    def move(self, oldpath, newpath, skip_if_exists=False):
        """Copy, then delete the source."""
        if not self.copy(oldpath, newpath, skip_if_exists):
            return False
        self.delete(oldpath)
        return True

    def move_copy_tree(self, old_root, new_root, fn, skip_if_exists=False,
                       workers=None):
        """Apply `fn(old, new)` to every secret below `old_root`.

        `fn` is usually `copy` or `move`. Destination paths replace the
        first occurrence of `old_root` by `new_root`.

        """
        old_root = canonicalize(old_root)
        new_root = canonicalize(new_root)

        tree = build_tree(self, old_root, workers=workers)
        pairs = [
            (path, path.replace(old_root, new_root, 1))
            for path in tree.secrets()
        ]
        if tree.kind in (NodeKind.SECRET, NodeKind.DIR_AND_SECRET):
            pairs.append((old_root, new_root))

        if skip_if_exists:
            existing = build_tree(self, new_root, workers=workers)
            existing = set(existing.secrets()) | {new_root}
            clobbered = [new for _, new in pairs if new in existing]
            # The root only counts if something is stored there.
            if new_root in clobbered:
                try:
                    self.read(new_root)
                except NotFound:
                    clobbered.remove(new_root)
            if clobbered:
                output.warn(
                    "Cowardly refusing to copy/move data into {}, as the "
                    "following paths would be clobbered:".format(new_root))
                for path in clobbered:
                    output.annotate("- " + path)
                return False

        for old, new in pairs:
            fn(old, new)
        return True

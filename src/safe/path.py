"""Path grammar for secret locations.

Paths look like ``secret/some/where`` and may name a single field of the
secret with a ``:key`` suffix, e.g. ``secret/db:password``. There is no
escape syntax for ``:`` or ``/``.

"""
import re

_SLASHES = re.compile("/{2,}")


def canonicalize(p):
    """Collapse slash runs, then drop the leading and trailing slash."""
    # Collapsing first keeps `//a` from coming out as `/a`.
    p = _SLASHES.sub("/", p)
    if p.startswith("/"):
        p = p[1:]
    if p.endswith("/"):
        p = p[:-1]
    return p


def parse_path(p):
    """Split ``p`` into ``(path, key)`` on the last colon.

    .. code-block:: pycon

        >>> parse_path("a/b:c:d")
        ('a/b:c', 'd')
        >>> parse_path("just/a/secret")
        ('just/a/secret', '')

    """
    path, sep, key = p.rpartition(":")
    if not sep:
        return canonicalize(p), ""
    return canonicalize(path), key


def path_has_key(p):
    return parse_path(p)[1] != ""


def path_less_than(left, right):
    left_split = canonicalize(left).split("/")
    right_split = canonicalize(right).split("/")

    for a, b in zip(left_split, right_split):
        if a < b:
            return True
        if a > b:
            return False

    if len(left) != len(right):
        return len(left) < len(right)
    return not left.endswith("/")


class _PathKey(object):

    __slots__ = ("path",)

    def __init__(self, path):
        self.path = path

    def __lt__(self, other):
        return path_less_than(self.path, other.path)


def sort_paths(paths):
    return sorted(paths, key=_PathKey)

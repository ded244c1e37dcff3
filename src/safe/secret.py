import json

import yaml

from safe import SafeError


class Secret(object):
    """A set of key/value pairs stored at one path.

    Values are always strings. Keys keep the order in which they were
    first set.

    """

    def __init__(self, data=None):
        self.data = {}
        for key, value in (data or {}).items():
            self.data[key] = stringify(value)

    def __repr__(self):
        return "<Secret keys={!r}>".format(self.keys())

    def __eq__(self, other):
        if not isinstance(other, Secret):
            return NotImplemented
        return self.data == other.data

    def __len__(self):
        return len(self.data)

    def __contains__(self, key):
        return key in self.data

    def has(self, key):
        return key in self.data

    def get(self, key):
        return self.data.get(key, "")

    def keys(self):
        return list(self.data)

    def items(self):
        return list(self.data.items())

    def set(self, key, value, skip_if_exists=False):
        if skip_if_exists and key in self.data:
            raise SafeError.from_context(
                "Refusing to overwrite the `{}` key, which already "
                "exists".format(key))
        self.data[key] = value

    def delete(self, key):
        """Remove `key`. Return whether there was something to remove."""
        if key not in self.data:
            return False
        del self.data[key]
        return True

    def empty(self):
        return not self.data

    def yaml(self):
        return yaml.safe_dump(
            self.data, default_flow_style=False, sort_keys=False)


def stringify(value):
    """Return `value` as a string, serializing non-strings to compact JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))

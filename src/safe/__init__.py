import os.path

from ._output import output

with open(os.path.dirname(__file__) + "/version.txt") as f:
    __version__ = f.read().strip()


class ReportingException(Exception):
    """Exceptions that support user-readable reporting."""

    def __str__(self):
        raise NotImplementedError()

    def report(self):
        raise NotImplementedError()


class NotFound(ReportingException):
    """Nothing is stored at the requested location.

    Callers exploring the namespace treat this as an answer, not as a
    failure.

    """

    path: str

    def report(self):
        output.error(str(self))


class SecretNotFound(NotFound):
    """There is no secret at the given path."""

    @classmethod
    def from_context(cls, path):
        self = cls()
        self.path = path
        return self

    def __str__(self):
        return "no secret exists at path `{}`".format(self.path)


class KeyNotFound(NotFound):
    """The secret exists but does not contain the given key."""

    key: str

    @classmethod
    def from_context(cls, path, key):
        self = cls()
        self.path = path
        self.key = key
        return self

    def __str__(self):
        return "no key `{}` exists in secret `{}`".format(self.key, self.path)


class VaultError(ReportingException):
    """The remote answered with an error."""

    status: int
    message: str
    url: str

    @classmethod
    def from_context(cls, status, message, url=""):
        self = cls()
        self.status = status
        self.message = message
        self.url = url
        return self

    def __str__(self):
        return self.message

    def report(self):
        output.error("Vault API error")
        if self.url:
            output.tabular("url", self.url, red=True)
        output.tabular("status", str(self.status))
        output.tabular("message", self.message, separator=":\n")


class SafeError(ReportingException):
    """An operation was refused or could not be completed."""

    message: str
    hint: str

    @classmethod
    def from_context(cls, message, hint=""):
        self = cls()
        self.message = message
        self.hint = hint
        return self

    def __str__(self):
        return str(self.message)

    def report(self):
        output.error(self.message)
        if self.hint:
            output.annotate(self.hint)


class NotASecret(SafeError):
    """A path that was expected to hold a secret is a folder."""

    @classmethod
    def from_context(cls, path):
        return super(NotASecret, cls).from_context(
            "`{}` points to a folder, not a secret".format(path))


class ConfigurationError(SafeError):
    """The targets configuration is not usable."""


class UsageError(ReportingException):
    """A command was called with unsuitable arguments."""

    usage: str

    @classmethod
    def from_context(cls, usage):
        self = cls()
        self.usage = usage
        return self

    def __str__(self):
        return "USAGE: {}".format(self.usage)

    def report(self):
        output.error(str(self))

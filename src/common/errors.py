"""Exception taxonomy shared by resolution, flows and uninstall."""


class PackweaveError(Exception):
    """Base class for all packweave errors."""


class ConfigurationError(PackweaveError):
    """Static configuration is invalid; fatal and never retried."""


class ManifestError(ConfigurationError):
    """A package or workspace manifest cannot be read or is malformed."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class SourceLoadError(PackweaveError):
    """A package source could not be fetched or read."""

    def __init__(self, name: str, message: str):
        super().__init__(f"{name}: {message}")
        self.name = name


class MergeError(PackweaveError):
    """A file could not be parsed or merged in its declared format."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class ResolutionAborted(PackweaveError):
    """User cancelled an interactive conflict prompt.

    Propagates unchanged through solve() and the install pipeline so callers
    can tell a cancellation apart from a failure.
    """

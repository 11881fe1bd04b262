"""Constants used in the project."""

import os
from enum import Enum

import yaml


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    EXIT_WARNINGS = 3
    UNRESOLVED_CONFLICTS = 4
    ABORTED = 5


class SourceKind(Enum):
    """Where a package's content comes from."""

    REGISTRY = "registry"
    GIT = "git"
    PATH = "path"
    WORKSPACE = "workspace"


class MergeStrategy(Enum):
    """How a flow combines new content with an existing target file."""

    REPLACE = "replace"
    DEEP = "deep"
    SHALLOW = "shallow"
    COMPOSITE = "composite"


class NodeState(Enum):
    """Lifecycle of a resolution node."""

    PENDING = "pending"
    LOADING = "loading"
    RESOLVED = "resolved"
    FAILED = "failed"


class SkipReason(Enum):
    """Why the planner left a node out of the installation plan."""

    FAILED = "failed"
    NOT_LOADED = "not-loaded"
    ALREADY_INSTALLED = "already-installed"


class InstallMode(Enum):
    """Install a package fresh or re-apply an installed one."""

    INSTALL = "install"
    APPLY = "apply"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    ENV_LOG_LEVEL = "PACKWEAVE_LOG_LEVEL"
    ENV_CONFIG = "PACKWEAVE_CONFIG"

    WORKSPACE_DIR = ".packweave"
    INDEX_FILE = "packweave.index.yml"
    INDEX_HEADER = "# This file is managed by packweave. Do not edit manually."
    MANIFEST_FILE = "packweave.yml"
    WORKSPACE_PACKAGES_DIR = "packages"

    REGISTRY_DIR = os.path.join("~", ".packweave", "registry")
    REGISTRY_URL = ""
    CACHE_DIR = os.path.join("~", ".packweave", "cache")
    PLATFORMS_FILE = ""

    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_CACHE_TTL_SEC = 300
    VERSION_LIST_TTL_SEC = 600

    MAX_DEPENDENCY_DEPTH = 10
    MAX_RESOLUTION_WAVES = 5
    MAX_CONCURRENCY = 8

    PRIORITY_DIRECT = 100
    PRIORITY_TRANSITIVE = 0

    WILDCARD_RANGES = ["*", "latest"]

    COMPOSITE_OPEN_MARKER = "<!-- package: {name} -->"
    COMPOSITE_CLOSE_MARKER = "<!-- -->"
    # Recorded in keysWritten when a merge wrote the Markdown body
    MARKDOWN_BODY_KEY = "<body>"


def _config_paths():
    """Candidate locations for the user configuration file, in precedence order."""
    paths = []
    explicit = os.environ.get(Constants.ENV_CONFIG)
    if explicit:
        paths.append(explicit)
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        paths.append(os.path.join(xdg, "packweave", "config.yml"))
    paths.append(os.path.join(os.path.expanduser("~"), ".config", "packweave", "config.yml"))
    return paths


def _load_yaml_config():
    """Load the first readable YAML config file; return {} when none is usable."""
    for path in _config_paths():
        if not os.path.isfile(path):
            continue
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError):
            continue
        if isinstance(data, dict):
            return data
    return {}


def _apply_config(cfg):
    """Overlay known config sections onto Constants."""
    registry = cfg.get("registry") or {}
    if isinstance(registry, dict):
        if isinstance(registry.get("dir"), str):
            Constants.REGISTRY_DIR = registry["dir"]
        if isinstance(registry.get("url"), str):
            Constants.REGISTRY_URL = registry["url"]
        if isinstance(registry.get("cache_dir"), str):
            Constants.CACHE_DIR = registry["cache_dir"]

    resolution = cfg.get("resolution") or {}
    if isinstance(resolution, dict):
        for key, attr in (
            ("max_depth", "MAX_DEPENDENCY_DEPTH"),
            ("max_waves", "MAX_RESOLUTION_WAVES"),
            ("max_concurrency", "MAX_CONCURRENCY"),
            ("priority_direct", "PRIORITY_DIRECT"),
            ("priority_transitive", "PRIORITY_TRANSITIVE"),
        ):
            if isinstance(resolution.get(key), int):
                setattr(Constants, attr, resolution[key])

    http = cfg.get("http") or {}
    if isinstance(http, dict):
        if isinstance(http.get("timeout"), int):
            Constants.REQUEST_TIMEOUT = http["timeout"]
        if isinstance(http.get("retries"), int):
            Constants.HTTP_RETRY_MAX = http["retries"]

    platforms = cfg.get("platforms") or {}
    if isinstance(platforms, dict) and isinstance(platforms.get("file"), str):
        Constants.PLATFORMS_FILE = platforms["file"]


_apply_config(_load_yaml_config())

"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict


class FailureKind(Enum):
    """Failure taxonomy for node-level resolution problems.

    Args:
        Enum (string): Failure kinds attached to document nodes.
    """

    METADATA_UNAVAILABLE = "metadata_unavailable"
    DESCRIPTOR_UNAVAILABLE = "descriptor_unavailable"
    MISSING_VERSION = "missing_version"
    UNRESOLVED_PROPERTY = "unresolved_property"
    PROPERTY_CYCLE = "property_cycle"
    PARENT_UNRESOLVABLE = "parent_unresolvable"


class FailureReason(Enum):
    """Per-repository reasons recorded by the artifact fetcher.

    Args:
        Enum (string): Reason a single repository attempt failed.
    """

    UNREACHABLE = "unreachable"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    HTTP_ERROR = "http_error"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    MAVEN_CENTRAL_ID = "central"
    MAVEN_CENTRAL_URL = "https://repo.maven.apache.org/maven2"
    LOCAL_REPOSITORY_ID = "local"
    LOCAL_REPOSITORY = os.path.join(os.path.expanduser("~"), ".m2", "repository")
    POM_NAMESPACE = "http://maven.apache.org/POM/4.0.0"
    METADATA_FILE = "maven-metadata.xml"
    SNAPSHOT_SUFFIX = "-SNAPSHOT"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for each repository attempt
    USER_AGENT = "pomresolver/0.1"
    MAX_WORKERS = 8
    MAX_TRANSITIVE_DEPTH = 8
    MAX_PARENT_DEPTH = 32
    WRITE_THROUGH = True

    # Marker texts
    MSG_NO_VERSION = "No version provided"
    MSG_UNRESOLVED_PROPERTY = "Could not resolve property"
    MSG_UNABLE_TO_DOWNLOAD = "Unable to download {what}. Tried repositories:"

    # Environment
    ENV_CONFIG = "POMRESOLVER_CONFIG"
    ENV_LOG_LEVEL = "POMRESOLVER_LOG_LEVEL"
    ENV_LOG_FORMAT = "POMRESOLVER_LOG_FORMAT"
    ENV_LOCAL_REPOSITORY = "POMRESOLVER_LOCAL_REPOSITORY"
    ENV_REQUEST_TIMEOUT = "POMRESOLVER_REQUEST_TIMEOUT"
    CONFIG_FILE_NAME = "pomresolver.yml"


def _config_search_paths():
    """Return candidate YAML config locations in priority order."""
    paths = []
    explicit = os.environ.get(Constants.ENV_CONFIG)
    if explicit:
        paths.append(explicit)
    paths.append(os.path.join(os.getcwd(), Constants.CONFIG_FILE_NAME))
    paths.append(
        os.path.join(os.path.expanduser("~"), ".config", "pomresolver", Constants.CONFIG_FILE_NAME)
    )
    return paths


def _load_yaml_config(path: str = None) -> Dict[str, Any]:
    """Load the resolver configuration from YAML.

    Args:
        path: Explicit file path. When omitted the default locations are searched.

    Returns:
        Parsed mapping, or an empty dict when no readable config exists.
    """
    import yaml  # pylint: disable=import-outside-toplevel

    candidates = [path] if path else _config_search_paths()
    for candidate in candidates:
        if not candidate or not os.path.isfile(candidate):
            continue
        with open(candidate, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            logging.getLogger(__name__).warning(
                "Ignoring config %s: top-level value is not a mapping", candidate
            )
            return {}
        return data
    return {}


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay environment overrides onto a loaded config mapping."""
    merged = dict(cfg)
    local = os.environ.get(Constants.ENV_LOCAL_REPOSITORY)
    if local and local.strip():
        merged["local_repository"] = local.strip()
    timeout = os.environ.get(Constants.ENV_REQUEST_TIMEOUT)
    if timeout:
        try:
            merged["request_timeout"] = float(timeout)
        except ValueError:
            logging.getLogger(__name__).warning(
                "Ignoring %s=%r: not a number", Constants.ENV_REQUEST_TIMEOUT, timeout
            )
    return merged

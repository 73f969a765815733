"""Desired state of a single image resource"""

import logging
from typing import Any, Dict, Optional

from imageward.core.errors import ConfigurationError
from imageward.core.identifier import DEFAULT_TAG, image_identifier

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 120

# Alternate spellings accepted in resource definitions
FIELD_ALIASES = {
    "image": "repo",
    "image_name": "repo",
    "no_cache": "nocache",
    "no_prune": "noprune",
}

FIELDS = ("repo", "tag", "source", "destination", "force", "nocache", "noprune", "rm",
          "read_timeout", "host")

BOOL_FIELDS = ("force", "nocache", "noprune", "rm")

_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0")


def parse_bool(value: Any, name: str) -> bool:
    """Read a flag that may arrive as a string after ${VAR} expansion"""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def parse_int(value: Any, name: str) -> int:
    """Read an integer that may arrive as a string after ${VAR} expansion"""
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ConfigurationError(f"{name} must be an integer, got {value!r}")


class ImageSpec:
    """Image resource as declared by the caller

    Args:
        repo: Repository name, optionally with a host[:port]/ prefix
        tag: Image tag
        source: Build context / Dockerfile path, import source, or archive to load
        destination: Archive path written by save
        force: Force tagging and removal
        nocache: Build without cache
        noprune: Keep untagged parents on removal
        rm: Remove intermediate build containers
        read_timeout: Seconds to wait on the engine per call
        host: Engine endpoint (unix://, tcp://, ssh://); None lets the engine
            client read DOCKER_HOST and its TLS variables
    """

    def __init__(self, repo: str, tag: str = DEFAULT_TAG, source: Optional[str] = None,
                 destination: Optional[str] = None, force: bool = False, nocache: bool = False,
                 noprune: bool = False, rm: bool = True, read_timeout: int = DEFAULT_READ_TIMEOUT,
                 host: Optional[str] = None):
        if not isinstance(repo, str) or not repo:
            raise ConfigurationError("repo must be a non-empty string")
        if not isinstance(tag, str) or not tag:
            raise ConfigurationError(f"tag must be a non-empty string for {repo}")
        if not isinstance(read_timeout, int) or isinstance(read_timeout, bool) or read_timeout <= 0:
            raise ConfigurationError(f"read_timeout must be a positive integer for {repo}")

        self.repo = repo
        self.tag = tag
        self.source = source
        self.destination = destination
        self.force = bool(force)
        self.nocache = bool(nocache)
        self.noprune = bool(noprune)
        self.rm = bool(rm)
        self.read_timeout = read_timeout
        self.host = host

    @property
    def identifier(self) -> str:
        """Canonical repo:tag reference"""
        return image_identifier(self.repo, self.tag)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageSpec":
        """Build a spec from a resource mapping, honoring field aliases

        Args:
            data: Resource definition (unknown keys are ignored with a warning)

        Returns:
            ImageSpec instance
        """
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            field = FIELD_ALIASES.get(key, key)
            if field not in FIELDS:
                if key != "action":
                    logger.warning(f"Ignoring unknown image field: {key}")
                continue
            if field in kwargs:
                raise ConfigurationError(f"Field '{field}' given more than once (via '{key}')")
            # An empty YAML value (tag:) leaves the field at its default
            if value is not None:
                kwargs[field] = value

        if "repo" not in kwargs:
            raise ConfigurationError("Image resource is missing 'repo'")

        # YAML turns tags like 1.21 into floats
        if "tag" in kwargs and not isinstance(kwargs["tag"], str):
            kwargs["tag"] = str(kwargs["tag"])

        for field in BOOL_FIELDS:
            if field in kwargs:
                kwargs[field] = parse_bool(kwargs[field], field)
        if "read_timeout" in kwargs:
            kwargs["read_timeout"] = parse_int(kwargs["read_timeout"], "read_timeout")

        return cls(**kwargs)

    def __repr__(self) -> str:
        return f"ImageSpec({self.identifier!r})"

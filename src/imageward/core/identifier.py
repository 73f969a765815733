"""Canonical image identifiers"""

from typing import Tuple

from imageward.core.errors import ConfigurationError

DEFAULT_TAG = "latest"


def image_identifier(repo: str, tag: str = DEFAULT_TAG) -> str:
    """Compose the canonical ``repo:tag`` reference

    Args:
        repo: Repository, optionally prefixed with ``host[:port]/``
        tag: Image tag

    Returns:
        Identifier string (e.g., nginx:1.21)
    """
    if not repo:
        raise ConfigurationError("repo must be a non-empty string")
    return f"{repo}:{tag}"


def split_identifier(identifier: str) -> Tuple[str, str]:
    """Split an identifier back into (repo, tag)

    Only a colon after the last slash separates the tag, so a registry port
    (localhost:5000/app) is never mistaken for one.

    Args:
        identifier: Image reference

    Returns:
        Tuple of (repo, tag); tag defaults to 'latest'
    """
    name_part = identifier.rsplit("/", 1)[-1]
    if ":" not in name_part:
        return identifier, DEFAULT_TAG

    repo, tag = identifier.rsplit(":", 1)
    return repo, tag

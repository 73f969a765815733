"""Registry host resolution and per-run credential store"""

import logging
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Key under which Docker Hub credentials are stored; also the fallback entry
DEFAULT_REGISTRY = "index.docker.io"


def registry_host(repo: str) -> str:
    """Extract the registry host from a repository reference

    The first path segment names a registry only when it looks like a
    hostname: it contains a dot or a port, or is 'localhost'.

    Args:
        repo: Repository reference (e.g., myregistry.example.com:5000/app)

    Returns:
        host[:port], or DEFAULT_REGISTRY for Docker Hub references
    """
    for scheme in ("https://", "http://"):
        if repo.startswith(scheme):
            repo = repo[len(scheme):]
            break

    if "/" not in repo:
        return DEFAULT_REGISTRY

    first = repo.split("/", 1)[0]
    if "." in first or ":" in first or first == "localhost":
        return first

    return DEFAULT_REGISTRY


class AuthStore:
    """Registry credentials shared by every image operation of a run

    Entries map a registry host to a docker auth_config dict (username,
    password, email, serveraddress, identitytoken). The store lives for one
    converge run and is safe to share between worker threads.
    """

    def __init__(self, entries: Optional[Dict[str, Dict[str, Any]]] = None):
        """Initialize the store

        Args:
            entries: Optional initial host -> credentials mapping
        """
        self._entries: Dict[str, Dict[str, Any]] = dict(entries or {})
        self._lock = threading.Lock()

    @classmethod
    def from_mapping(cls, mapping: Optional[Dict[str, Any]]) -> "AuthStore":
        """Build a store from the 'auth' block of a configuration file"""
        entries = {}
        for host, creds in (mapping or {}).items():
            if not isinstance(creds, dict):
                logger.warning(f"Ignoring credentials for {host}: expected a mapping")
                continue
            entries[str(host)] = dict(creds)
        return cls(entries)

    def set(self, host: str, credentials: Dict[str, Any]) -> None:
        """Store credentials for a registry host"""
        with self._lock:
            self._entries[host] = credentials
        logger.debug(f"Stored credentials for {host}")

    def get(self, host: str) -> Optional[Dict[str, Any]]:
        """Return the credentials stored for a host, if any"""
        with self._lock:
            return self._entries.get(host)

    def credentials(self, repo: str) -> Dict[str, Any]:
        """Resolve credentials for a repository

        Falls back to the default registry entry, creating an empty one on
        first use so later lookups share the same object.

        Args:
            repo: Repository reference

        Returns:
            Credentials dict; empty means anonymous / engine defaults
        """
        host = registry_host(repo)
        with self._lock:
            creds = self._entries.get(host)
            if creds is not None:
                return creds
            if host != DEFAULT_REGISTRY:
                logger.debug(f"No credentials for {host}, using {DEFAULT_REGISTRY} entry")
            return self._entries.setdefault(DEFAULT_REGISTRY, {})

    def __contains__(self, host: str) -> bool:
        with self._lock:
            return host in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

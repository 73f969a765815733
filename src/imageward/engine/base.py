"""Abstract base classes for container engine clients"""

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Dict, List


class ImageHandle(ABC):
    """An image held by the engine"""

    @property
    @abstractmethod
    def id(self) -> str:
        """Engine image id (short or long form)"""
        pass

    @abstractmethod
    def tag(self, repo: str, tag: str, force: bool = False) -> None:
        """Tag the image as repo:tag

        Args:
            repo: Target repository
            tag: Target tag
            force: Overwrite an existing tag
        """
        pass

    @abstractmethod
    def push(self, credentials: Dict[str, Any], repo_tag: str) -> None:
        """Push the image to its registry

        Args:
            credentials: auth_config for the registry (empty for engine defaults)
            repo_tag: Reference to push (e.g., registry:5000/app:v1)
        """
        pass

    @abstractmethod
    def remove(self, force: bool = False, noprune: bool = False) -> None:
        """Remove the image from the engine

        Args:
            force: Remove even if in use
            noprune: Keep untagged parents
        """
        pass


class BaseEngine(ABC):
    """Abstract base for container engine image APIs

    Implementations raise TransportFailure / APIFailure from
    imageward.core.errors; absence is reported by exists(), not by raising.
    """

    @abstractmethod
    def exists(self, identifier: str) -> bool:
        """Check whether the engine holds an image"""
        pass

    @abstractmethod
    def get(self, identifier: str) -> ImageHandle:
        """Look up an image; raises ImageNotFoundError if absent"""
        pass

    @abstractmethod
    def create(self, identifier: str, credentials: Dict[str, Any]) -> ImageHandle:
        """Pull an image from its registry

        Args:
            identifier: repo:tag to pull
            credentials: auth_config for the registry (empty for engine defaults)

        Returns:
            Handle of the pulled image
        """
        pass

    @abstractmethod
    def build_from_directory(self, path: str, options: Dict[str, Any]) -> ImageHandle:
        """Build from a context directory"""
        pass

    @abstractmethod
    def build_from_tar(self, stream: BinaryIO, options: Dict[str, Any]) -> ImageHandle:
        """Build from a tar stream holding the context"""
        pass

    @abstractmethod
    def build_from_dockerfile_text(self, text: str, options: Dict[str, Any]) -> ImageHandle:
        """Build from Dockerfile contents without a context"""
        pass

    @abstractmethod
    def import_image(self, source: str) -> ImageHandle:
        """Import a filesystem tarball (path or URL) as an image"""
        pass

    @abstractmethod
    def save(self, repo: str, destination: str) -> None:
        """Write an image archive to a local path"""
        pass

    @abstractmethod
    def load(self, path: str) -> List[ImageHandle]:
        """Load image(s) from a local archive"""
        pass

    def close(self) -> None:
        """Release the engine connection"""
        pass

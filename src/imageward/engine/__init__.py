"""Container engine clients"""

from .base import BaseEngine, ImageHandle
from .docker import DockerEngine, build_tls_config

__all__ = ["BaseEngine", "ImageHandle", "DockerEngine", "build_tls_config"]

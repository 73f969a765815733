"""Docker engine implementation backed by the docker SDK"""

import contextlib
import io
import json
import logging
import threading
from typing import Any, BinaryIO, Dict, Iterator, List, Optional

import docker
import docker.errors
import docker.tls
import paramiko
import requests

from imageward.core.errors import APIFailure, ImageNotFoundError, TransportFailure
from imageward.core.identifier import split_identifier
from imageward.core.spec import DEFAULT_READ_TIMEOUT
from .base import BaseEngine, ImageHandle

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def translate_errors(what: str, identifier: Optional[str] = None) -> Iterator[None]:
    """Map docker SDK and transport exceptions onto imageward errors

    Args:
        what: Operation name for messages
        identifier: Image the operation targets, for not-found errors
    """
    try:
        yield
    except docker.errors.ImageNotFound as e:
        raise ImageNotFoundError(identifier or str(e)) from e
    except docker.errors.APIError as e:
        raise APIFailure(f"{what} failed: {e.explanation or e}", status_code=e.status_code) from e
    except docker.errors.BuildError as e:
        raise APIFailure(f"{what} failed: {e.msg}") from e
    except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
        raise TransportFailure(f"{what} failed: {e}") from e
    except paramiko.SSHException as e:
        raise TransportFailure(f"{what} failed over SSH: {e}") from e
    except docker.errors.DockerException as e:
        raise APIFailure(f"{what} failed: {e}") from e


def build_tls_config(verify: bool = False, ca_cert: Optional[str] = None,
                     client_cert: Optional[str] = None,
                     client_key: Optional[str] = None) -> Optional[docker.tls.TLSConfig]:
    """Build a TLS configuration for a tcp:// engine endpoint

    Args:
        verify: Verify the engine certificate against ca_cert
        ca_cert: CA certificate path
        client_cert: Client certificate path
        client_key: Client key path

    Returns:
        TLSConfig, or None when no TLS option is set
    """
    if not (verify or ca_cert or client_cert or client_key):
        return None

    cert = None
    if client_cert or client_key:
        if not (client_cert and client_key):
            raise ValueError("tls client_cert and client_key must be given together")
        cert = (client_cert, client_key)

    return docker.tls.TLSConfig(
        client_cert=cert,
        ca_cert=ca_cert,
        verify=ca_cert if verify and ca_cert else verify,
    )


class DockerImageHandle(ImageHandle):
    """Image held by a Docker engine"""

    def __init__(self, image, client: docker.DockerClient, reference: Optional[str] = None):
        """Initialize image handle

        Args:
            image: docker.models.images.Image
            client: Client the image was obtained from
            reference: Name the image was looked up by, if any
        """
        self._image = image
        self._client = client
        self.reference = reference

    @property
    def id(self) -> str:
        return self._image.id

    def tag(self, repo: str, tag: str, force: bool = False) -> None:
        with translate_errors(f"Tag {repo}:{tag}", self.id):
            if not self._image.tag(repo, tag=tag, force=force):
                raise APIFailure(f"Engine refused to tag {self.id} as {repo}:{tag}")
        logger.debug(f"Tagged {self.id} as {repo}:{tag}")

    def push(self, credentials: Dict[str, Any], repo_tag: str) -> None:
        repo, tag = split_identifier(repo_tag)
        with translate_errors(f"Push {repo_tag}", repo_tag):
            stream = self._client.images.push(
                repo,
                tag=tag,
                auth_config=credentials or None,
                stream=True,
                decode=True,
            )
            for chunk in stream:
                if chunk.get("error"):
                    raise APIFailure(f"Push {repo_tag} failed: {chunk['error']}")
                if chunk.get("status"):
                    logger.debug(f"{repo_tag}: {chunk['status']}")

    def remove(self, force: bool = False, noprune: bool = False) -> None:
        target = self.reference or self.id
        with translate_errors(f"Remove {target}", target):
            self._client.images.remove(image=target, force=force, noprune=noprune)


class DockerEngine(BaseEngine):
    """Image operations against a Docker engine"""

    def __init__(self, host: Optional[str] = None, read_timeout: int = DEFAULT_READ_TIMEOUT,
                 tls: Optional[docker.tls.TLSConfig] = None):
        """Initialize Docker engine

        Args:
            host: Engine endpoint (unix://, tcp://, ssh://); None uses the environment
            read_timeout: Seconds to wait for a response per call
            tls: TLS configuration for tcp:// endpoints
        """
        self.host = host
        self.read_timeout = read_timeout
        self.tls = tls
        self._client: Optional[docker.DockerClient] = None
        self._client_lock = threading.Lock()

    @property
    def client(self) -> docker.DockerClient:
        """Connected docker client, created on first use"""
        with self._client_lock:
            if self._client is None:
                self._client = self._connect()
            return self._client

    def _connect(self) -> docker.DockerClient:
        endpoint = self.host or "environment default"
        try:
            if self.host:
                client = docker.DockerClient(base_url=self.host, timeout=self.read_timeout, tls=self.tls)
            else:
                if self.tls:
                    logger.warning("Ignoring tls settings without an explicit host; using the environment")
                client = docker.from_env(timeout=self.read_timeout)
        except docker.errors.DockerException as e:
            logger.error(f"Docker engine unavailable at {endpoint}: {e}")
            raise TransportFailure(f"Docker engine unavailable at {endpoint}: {e}") from e

        logger.info(f"Connected to Docker engine at {endpoint}")
        return client

    def _handle(self, image, reference: Optional[str] = None) -> DockerImageHandle:
        return DockerImageHandle(image, self.client, reference)

    def exists(self, identifier: str) -> bool:
        try:
            with translate_errors(f"Inspect {identifier}", identifier):
                self.client.images.get(identifier)
        except ImageNotFoundError:
            logger.debug(f"Image not present: {identifier}")
            return False
        return True

    def get(self, identifier: str) -> ImageHandle:
        with translate_errors(f"Inspect {identifier}", identifier):
            image = self.client.images.get(identifier)
        return self._handle(image, identifier)

    def create(self, identifier: str, credentials: Dict[str, Any]) -> ImageHandle:
        repo, tag = split_identifier(identifier)
        logger.debug(f"Pulling {identifier}")
        with translate_errors(f"Pull {identifier}", identifier):
            image = self.client.images.pull(repo, tag=tag, auth_config=credentials or None)
        return self._handle(image, identifier)

    def build_from_directory(self, path: str, options: Dict[str, Any]) -> ImageHandle:
        logger.debug(f"Building from directory {path}")
        with translate_errors(f"Build from {path}"):
            image, _ = self.client.images.build(path=path, timeout=self.read_timeout, **options)
        return self._handle(image)

    def build_from_tar(self, stream: BinaryIO, options: Dict[str, Any]) -> ImageHandle:
        logger.debug("Building from tar context")
        with translate_errors("Build from tar context"):
            image, _ = self.client.images.build(
                fileobj=stream, custom_context=True, timeout=self.read_timeout, **options
            )
        return self._handle(image)

    def build_from_dockerfile_text(self, text: str, options: Dict[str, Any]) -> ImageHandle:
        logger.debug("Building from Dockerfile text")
        with translate_errors("Build from Dockerfile"):
            image, _ = self.client.images.build(
                fileobj=io.BytesIO(text.encode("utf-8")), timeout=self.read_timeout, **options
            )
        return self._handle(image)

    def import_image(self, source: str) -> ImageHandle:
        logger.debug(f"Importing image from {source}")
        with translate_errors(f"Import from {source}"):
            output = self.client.api.import_image(src=source)
        image_id = self._imported_id(output)
        if not image_id:
            raise APIFailure(f"Import from {source} returned no image id: {output!r}")
        return self.get(image_id)

    @staticmethod
    def _imported_id(output: Any) -> Optional[str]:
        """Extract the new image id from /images/create output"""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        if isinstance(output, dict):
            lines = [output]
        else:
            lines = []
            for line in str(output).splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    lines.append(json.loads(line))
                except ValueError:
                    logger.debug(f"Unparseable import output: {line}")

        for entry in reversed(lines):
            status = entry.get("status", "") if isinstance(entry, dict) else ""
            if status.startswith("sha256:"):
                return status
        return None

    def save(self, repo: str, destination: str) -> None:
        logger.debug(f"Saving {repo} to {destination}")
        with translate_errors(f"Save {repo}", repo):
            chunks = self.client.api.get_image(repo)
            with open(destination, "wb") as f:
                for chunk in chunks:
                    f.write(chunk)

    def load(self, path: str) -> List[ImageHandle]:
        logger.debug(f"Loading images from {path}")
        with open(path, "rb") as f:
            with translate_errors(f"Load {path}"):
                images = self.client.images.load(f)
        return [self._handle(image) for image in images]

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                try:
                    self._client.close()
                except Exception as e:
                    logger.warning(f"Error closing Docker connection: {e}")
                self._client = None
        logger.debug("Closed Docker connection")

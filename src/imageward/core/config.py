"""Configuration management"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import yaml

from imageward.core.actions import DEFAULT_ACTION, REQUIRED_FIELDS, Action
from imageward.core.auth import AuthStore
from imageward.core.env import EnvManager
from imageward.core.errors import ConfigurationError
from imageward.core.retry import BACKOFF_LINEAR, RetryPolicy
from imageward.core.spec import DEFAULT_READ_TIMEOUT, ImageSpec, parse_bool, parse_int

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0


class Config:
    """Image resources and engine settings loaded from a YAML file

    Example::

        host: unix:///var/run/docker.sock
        read_timeout: 300
        retries: {max_attempts: 5, delay: 2, backoff: linear}
        auth:
          registry.example.com:5000:
            username: deploy
            password: ${REGISTRY_PASSWORD:?set the registry password}
        images:
          - repo: nginx
            tag: "1.25"
            action: pull_if_missing
          - repo: registry.example.com:5000/app
            tag: v1
            source: ./app
            action: build
    """

    def __init__(self, config_file: str, env_files: Optional[List[str]] = None):
        """Load configuration from YAML file

        Args:
            config_file: Path to configuration YAML file
            env_files: Environment files layered over the process environment
        """
        self.config_file = config_file
        self.data: Dict[str, Any] = {}
        self.env_manager = EnvManager()
        self.env_files = env_files or []
        self.errors: List[str] = []

        if self.env_files:
            self.env_manager.add_files(self.env_files)

        self.load()

    def load(self) -> None:
        """Load configuration from file and apply environment variable expansion"""
        try:
            with open(self.config_file, "r") as f:
                raw = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.error(f"Configuration file not found: {self.config_file}")
            raise
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse configuration file: {e}")
            raise

        if not isinstance(raw, dict):
            raise ConfigurationError(f"{self.config_file} must contain a mapping at the top level")

        env_from = raw.get("env_from", [])
        if isinstance(env_from, str):
            env_from = [env_from]
        self.env_manager.add_files(env_from)

        env_direct = raw.get("env", {})
        if isinstance(env_direct, list):
            env_direct = dict(item.split("=", 1) for item in env_direct if "=" in item)
        if env_direct:
            self.env_manager.add(env_direct)
            logger.info(f"Loaded {len(env_direct)} direct environment variable(s)")

        try:
            self.data = self.env_manager.expand_tree(raw)
        except ValueError as e:
            logger.error(f"Environment variable expansion failed: {e}")
            raise ConfigurationError(str(e)) from e

        logger.info(f"Loaded configuration from {self.config_file}")

    @property
    def host(self) -> Optional[str]:
        """Engine endpoint shared by resources that do not set their own"""
        return self.data.get("host")

    @property
    def read_timeout(self) -> int:
        """Default per-call read timeout in seconds"""
        return parse_int(self.data.get("read_timeout", DEFAULT_READ_TIMEOUT), "read_timeout")

    @property
    def tls(self) -> Dict[str, Any]:
        """TLS options (verify, ca_cert, client_cert, client_key)"""
        tls = dict(self.data.get("tls") or {})
        if "verify" in tls:
            tls["verify"] = parse_bool(tls["verify"], "tls.verify")
        return tls

    @property
    def max_workers(self) -> int:
        """Number of resources converged concurrently"""
        return parse_int(self.data.get("max_workers", 1), "max_workers")

    @property
    def auth(self) -> Dict[str, Any]:
        """Registry host -> credentials mapping"""
        return self.data.get("auth") or {}

    def auth_store(self) -> AuthStore:
        """Build the credential store for one converge run"""
        return AuthStore.from_mapping(self.auth)

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy from the 'retries' block"""
        retries = self.data.get("retries") or {}
        try:
            return RetryPolicy(
                max_attempts=int(retries.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
                delay=float(retries.get("delay", DEFAULT_RETRY_DELAY)),
                backoff=retries.get("backoff", BACKOFF_LINEAR),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid retries configuration: {e}") from e

    @property
    def resources(self) -> List[Tuple[Action, ImageSpec]]:
        """Image resources in file order, each with its action

        Resources inherit the global host and read_timeout.

        Raises:
            ConfigurationError: On the first invalid resource
        """
        entries = self.data.get("images", [])
        if not isinstance(entries, list):
            raise ConfigurationError("'images' must be a list")

        resources = []
        for index, entry in enumerate(entries):
            if isinstance(entry, str):
                entry = {"repo": entry}
            if not isinstance(entry, dict):
                raise ConfigurationError(f"images[{index}] must be a mapping or a repo string")

            entry = dict(entry)
            entry.setdefault("read_timeout", self.read_timeout)
            if self.host is not None:
                entry.setdefault("host", self.host)

            try:
                action = Action.parse(entry.get("action", DEFAULT_ACTION))
                spec = ImageSpec.from_dict(entry)
            except ConfigurationError as e:
                raise ConfigurationError(f"images[{index}]: {e}") from e
            resources.append((action, spec))

        return resources

    def validate(self) -> bool:
        """Validate configuration, recording problems in self.errors

        Returns:
            True if configuration is valid
        """
        self.errors = []

        try:
            resources = self.resources
        except ConfigurationError as e:
            self.errors.append(str(e))
            resources = []
        else:
            if not resources:
                self.errors.append("No images specified")

        for action, spec in resources:
            for field in REQUIRED_FIELDS.get(action, ()):
                if not getattr(spec, field):
                    self.errors.append(f"{spec.identifier}: '{field}' is required for {action.value}")

        try:
            self.retry_policy()
        except ConfigurationError as e:
            self.errors.append(str(e))

        try:
            if self.max_workers < 1:
                self.errors.append("max_workers must be a positive integer")
        except ConfigurationError as e:
            self.errors.append(str(e))

        try:
            tls = self.tls
        except ConfigurationError as e:
            self.errors.append(str(e))
        else:
            # A tls block only applies to an explicit host
            if tls:
                for _, spec in resources:
                    if spec.host is None:
                        self.errors.append(f"{spec.identifier}: 'tls' requires an explicit host")

        for error in self.errors:
            logger.error(error)
        return not self.errors

"""Image actions: decide whether work is needed, do it, report the change"""

import enum
import logging
from typing import Callable, Dict, Optional, Union

from imageward.core.auth import AuthStore
from imageward.core.errors import ConfigurationError
from imageward.core.retry import RetryPolicy, with_retries
from imageward.core.spec import ImageSpec
from imageward.core.strategy import BuildStrategy, select_strategy
from imageward.engine.base import BaseEngine, ImageHandle

logger = logging.getLogger(__name__)


class Action(enum.Enum):
    """Actions an image resource can converge with"""

    BUILD = "build"
    BUILD_IF_MISSING = "build_if_missing"
    PULL = "pull"
    PULL_IF_MISSING = "pull_if_missing"
    PUSH = "push"
    IMPORT = "import"
    REMOVE = "remove"
    SAVE = "save"
    LOAD = "load"

    @classmethod
    def parse(cls, value: Union[str, "Action"]) -> "Action":
        """Look up an action by name (case-insensitive, '-' or '_')"""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower().replace("-", "_")
        try:
            return cls(name)
        except ValueError:
            choices = ", ".join(a.value for a in cls)
            raise ConfigurationError(f"Unknown action '{value}' (expected one of: {choices})")


DEFAULT_ACTION = Action.PULL

# Fields that must be set before an action may touch the engine
REQUIRED_FIELDS = {
    Action.BUILD: ("source",),
    Action.BUILD_IF_MISSING: ("source",),
    Action.IMPORT: ("source",),
    Action.LOAD: ("source",),
    Action.SAVE: ("destination",),
}


class ActionResult:
    """Outcome of one action on one image"""

    def __init__(self, action: Action, identifier: str, changed: bool, description: str):
        self.action = action
        self.identifier = identifier
        self.changed = changed
        self.description = description

    def __repr__(self) -> str:
        return (f"ActionResult(action={self.action.value!r}, identifier={self.identifier!r}, "
                f"changed={self.changed})")


class ImageActionEngine:
    """Runs image actions against an engine

    Every mutating engine call goes through the retry policy; existence
    checks do not.
    """

    def __init__(self, engine: BaseEngine, auth: AuthStore, retry_policy: Optional[RetryPolicy] = None):
        """Initialize action engine

        Args:
            engine: Engine client, borrowed for the duration of each call
            auth: Credential store shared by the run
            retry_policy: Retry policy for mutating calls
        """
        self.engine = engine
        self.auth = auth
        self.retry_policy = retry_policy or RetryPolicy()
        self._dispatch: Dict[Action, Callable[[ImageSpec], ActionResult]] = {
            Action.BUILD: self.build,
            Action.BUILD_IF_MISSING: self.build_if_missing,
            Action.PULL: self.pull,
            Action.PULL_IF_MISSING: self.pull_if_missing,
            Action.PUSH: self.push,
            Action.IMPORT: self.import_,
            Action.REMOVE: self.remove,
            Action.SAVE: self.save,
            Action.LOAD: self.load,
        }

    def run(self, action: Union[str, Action], spec: ImageSpec) -> ActionResult:
        """Run an action for an image spec

        Args:
            action: Action or its name
            spec: Desired image state

        Returns:
            ActionResult telling whether anything changed
        """
        return self._dispatch[Action.parse(action)](spec)

    @staticmethod
    def _validate(action: Action, spec: ImageSpec) -> None:
        for field in REQUIRED_FIELDS.get(action, ()):
            if not getattr(spec, field):
                raise ConfigurationError(f"'{field}' is required for {action.value} of {spec.identifier}")

    def _retry(self, operation, description: str):
        return with_retries(self.retry_policy, operation, description)

    def _converged(self, action: Action, spec: ImageSpec, description: str) -> ActionResult:
        logger.info(description)
        return ActionResult(action, spec.identifier, True, description)

    def _skipped(self, action: Action, spec: ImageSpec, reason: str) -> ActionResult:
        logger.info(f"{spec.identifier}: {reason}, nothing to do for {action.value}")
        return ActionResult(action, spec.identifier, False, reason)

    # -- build -----------------------------------------------------------

    def _build_image(self, spec: ImageSpec) -> ImageHandle:
        options = {"nocache": spec.nocache, "rm": spec.rm}
        strategy = select_strategy(spec.source)
        logger.debug(f"Building {spec.identifier} using {strategy.value} strategy")

        if strategy is BuildStrategy.DIRECTORY:
            image = self.engine.build_from_directory(spec.source, options)
        elif strategy is BuildStrategy.TAR:
            with open(spec.source, "rb") as stream:
                image = self.engine.build_from_tar(stream, options)
        elif strategy is BuildStrategy.DOCKERFILE_TEXT:
            with open(spec.source, "r") as f:
                text = f.read()
            image = self.engine.build_from_dockerfile_text(text, options)
        else:
            raise AssertionError(f"Unhandled build strategy: {strategy}")

        self._retry(lambda: image.tag(spec.repo, spec.tag, spec.force), f"Tag {spec.identifier}")
        return image

    def build(self, spec: ImageSpec) -> ActionResult:
        """Build the image and tag it; always a change"""
        self._validate(Action.BUILD, spec)
        self._build_image(spec)
        return self._converged(Action.BUILD, spec, f"Build image {spec.identifier}")

    def build_if_missing(self, spec: ImageSpec) -> ActionResult:
        """Build only when the image is not present"""
        self._validate(Action.BUILD_IF_MISSING, spec)
        if self.engine.exists(spec.identifier):
            return self._skipped(Action.BUILD_IF_MISSING, spec, "image already present")
        self._build_image(spec)
        return self._converged(Action.BUILD_IF_MISSING, spec, f"Build image {spec.identifier}")

    # -- pull ------------------------------------------------------------

    def _pull_image(self, spec: ImageSpec) -> bool:
        identifier = spec.identifier

        def pull() -> bool:
            creds = self.auth.credentials(spec.repo)
            # The pull may replace the resident image in place, so read it first
            original = self.engine.get(identifier) if self.engine.exists(identifier) else None
            new_image = self.engine.create(identifier, creds)
            # Engines mix short and long ids; compare by prefix
            return not (original is not None and original.id.startswith(new_image.id))

        return self._retry(pull, f"Pull {identifier}")

    def pull(self, spec: ImageSpec) -> ActionResult:
        """Pull the image; a change only if its id moved"""
        if self._pull_image(spec):
            return self._converged(Action.PULL, spec, f"Pull image {spec.identifier}")
        return self._skipped(Action.PULL, spec, "image is up to date")

    def pull_if_missing(self, spec: ImageSpec) -> ActionResult:
        """Pull only when the image is not present"""
        if self.engine.exists(spec.identifier):
            return self._skipped(Action.PULL_IF_MISSING, spec, "image already present")
        result = self.pull(spec)
        return ActionResult(Action.PULL_IF_MISSING, result.identifier, result.changed, result.description)

    # -- push ------------------------------------------------------------

    def push(self, spec: ImageSpec) -> ActionResult:
        """Push the local image to its registry; always a change"""
        identifier = spec.identifier

        def push() -> None:
            creds = self.auth.credentials(spec.repo)
            image = self.engine.get(identifier)
            image.push(creds, identifier)

        self._retry(push, f"Push {identifier}")
        return self._converged(Action.PUSH, spec, f"Push image {identifier}")

    # -- import ----------------------------------------------------------

    def import_(self, spec: ImageSpec) -> ActionResult:
        """Import a tarball as the image unless it is present"""
        self._validate(Action.IMPORT, spec)
        if self.engine.exists(spec.identifier):
            return self._skipped(Action.IMPORT, spec, "image already present")

        def import_image() -> None:
            image = self.engine.import_image(spec.source)
            image.tag(spec.repo, spec.tag, spec.force)

        self._retry(import_image, f"Import {spec.identifier}")
        return self._converged(Action.IMPORT, spec, f"Import image {spec.identifier}")

    # -- remove ----------------------------------------------------------

    def remove(self, spec: ImageSpec) -> ActionResult:
        """Remove the image if present"""
        identifier = spec.identifier
        if not self.engine.exists(identifier):
            return self._skipped(Action.REMOVE, spec, "image not present")

        def remove() -> None:
            image = self.engine.get(identifier)
            image.remove(force=spec.force, noprune=spec.noprune)

        self._retry(remove, f"Remove {identifier}")
        return self._converged(Action.REMOVE, spec, f"Remove image {identifier}")

    # -- save / load -----------------------------------------------------

    def save(self, spec: ImageSpec) -> ActionResult:
        """Write the image archive to the destination; always a change"""
        self._validate(Action.SAVE, spec)
        self._retry(lambda: self.engine.save(spec.repo, spec.destination), f"Save {spec.repo}")
        return self._converged(Action.SAVE, spec, f"Save image {spec.identifier}")

    def load(self, spec: ImageSpec) -> ActionResult:
        """Load image(s) from the source archive; always a change"""
        self._validate(Action.LOAD, spec)
        self._retry(lambda: self.engine.load(spec.source), f"Load {spec.source}")
        return self._converged(Action.LOAD, spec, f"Load image {spec.identifier}")

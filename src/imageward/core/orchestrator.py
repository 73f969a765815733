"""Converge a set of image resources"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Tuple

from imageward.core.actions import Action, ActionResult, ImageActionEngine
from imageward.core.auth import AuthStore
from imageward.core.config import Config
from imageward.core.retry import RetryPolicy
from imageward.core.spec import ImageSpec, parse_bool
from imageward.engine.base import BaseEngine
from imageward.engine.docker import DockerEngine, build_tls_config

logger = logging.getLogger(__name__)

EngineFactory = Callable[..., BaseEngine]


class ConvergeOutcome:
    """Result or error of converging one resource"""

    def __init__(self, action: Action, spec: ImageSpec, result: Optional[ActionResult] = None,
                 error: Optional[BaseException] = None):
        self.action = action
        self.spec = spec
        self.result = result
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def changed(self) -> bool:
        return bool(self.result and self.result.changed)


class Converger:
    """Runs image resources against their engines with one shared AuthStore"""

    def __init__(self, resources: List[Tuple[Action, ImageSpec]], auth: Optional[AuthStore] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 engine_factory: EngineFactory = DockerEngine, tls: Optional[dict] = None,
                 max_workers: int = 1):
        """Initialize converger

        Args:
            resources: (action, spec) pairs in the order to converge them
            auth: Credential store for the run (a fresh empty one by default)
            retry_policy: Retry policy for mutating engine calls
            engine_factory: Called as engine_factory(host=, read_timeout=, tls=)
            tls: TLS options (verify, ca_cert, client_cert, client_key)
            max_workers: Resources converged concurrently (1-10)
        """
        self.resources = resources
        self.auth = auth if auth is not None else AuthStore()
        self.retry_policy = retry_policy or RetryPolicy()
        self.engine_factory = engine_factory
        self.tls = tls or {}
        self.max_workers = max(1, min(10, max_workers))
        self.engines: Dict[Tuple[Optional[str], int], BaseEngine] = {}
        self.engines_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config, engine_factory: EngineFactory = DockerEngine,
                    max_workers: Optional[int] = None) -> "Converger":
        """Build a converger for everything declared in a configuration"""
        return cls(
            config.resources,
            auth=config.auth_store(),
            retry_policy=config.retry_policy(),
            engine_factory=engine_factory,
            tls=config.tls,
            max_workers=max_workers if max_workers is not None else config.max_workers,
        )

    def _engine_for(self, spec: ImageSpec) -> BaseEngine:
        """Get or create the engine connection for a spec's endpoint"""
        key = (spec.host, spec.read_timeout)
        with self.engines_lock:
            if key not in self.engines:
                tls = build_tls_config(
                    verify=parse_bool(self.tls.get("verify", False), "tls.verify"),
                    ca_cert=self.tls.get("ca_cert"),
                    client_cert=self.tls.get("client_cert"),
                    client_key=self.tls.get("client_key"),
                )
                self.engines[key] = self.engine_factory(host=spec.host, read_timeout=spec.read_timeout, tls=tls)
                logger.debug(f"Created engine for {spec.host or 'default host'}")
            return self.engines[key]

    def converge_one(self, action: Action, spec: ImageSpec) -> ActionResult:
        """Run one resource's action; errors propagate"""
        actions = ImageActionEngine(self._engine_for(spec), self.auth, self.retry_policy)
        return actions.run(action, spec)

    def _converge_safely(self, action: Action, spec: ImageSpec) -> ConvergeOutcome:
        try:
            return ConvergeOutcome(action, spec, result=self.converge_one(action, spec))
        except Exception as e:
            logger.error(f"Failed to {action.value} {spec.identifier}: {e}")
            return ConvergeOutcome(action, spec, error=e)

    def run(self) -> List[ConvergeOutcome]:
        """Converge every resource

        Sequential runs stop at the first failure; concurrent runs let
        in-flight resources finish.

        Returns:
            Outcomes in resource order (only those attempted)
        """
        logger.info(f"Converging {len(self.resources)} image resource(s)")
        outcomes: List[ConvergeOutcome] = []

        try:
            if self.max_workers == 1 or len(self.resources) <= 1:
                for action, spec in self.resources:
                    outcome = self._converge_safely(action, spec)
                    outcomes.append(outcome)
                    if not outcome.ok:
                        break
            else:
                logger.info(f"Running with max {self.max_workers} concurrent resource(s)")
                with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                    futures = {
                        executor.submit(self._converge_safely, action, spec): index
                        for index, (action, spec) in enumerate(self.resources)
                    }
                    by_index = {}
                    for future in as_completed(futures):
                        by_index[futures[future]] = future.result()
                outcomes = [by_index[i] for i in sorted(by_index)]
        finally:
            self.close()

        changed = sum(1 for o in outcomes if o.changed)
        failed = sum(1 for o in outcomes if not o.ok)
        logger.info(f"Converge finished: {changed} changed, {failed} failed, {len(outcomes)} attempted")
        return outcomes

    def close(self) -> None:
        """Close all engine connections"""
        with self.engines_lock:
            for engine in self.engines.values():
                engine.close()
            self.engines.clear()

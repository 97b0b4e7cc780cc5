"""Runner — owns the check registry and serves list/run requests per phase."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import IO, Any

from check_runner.checks.registry import (
    ROLES,
    CheckDefinition,
    Registry,
    load_registry,
    parse_payload,
    read_payload,
)
from check_runner.errors import CheckNotFoundError, ConfigError, InvalidRoleError
from check_runner.runner.engine import run_checks
from check_runner.runner.results import CombinedResult, aggregate, describe

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    CLUSTER = "cluster"
    PRESTART = "node-prestart"
    POSTSTART = "node-poststart"


class Runner:
    """Runs the checks of one config for a fixed node role.

    ``load``/``load_from_file`` swap in a complete new registry; list and run
    operations work on whichever registry was current when they started.
    """

    def __init__(self, role: str) -> None:
        if role not in ROLES:
            raise InvalidRoleError(role)
        self._role = role
        self._registry = Registry()
        self._lock = threading.Lock()

    @property
    def role(self) -> str:
        return self._role

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def check_env(self) -> dict[str, str]:
        """Extra environment variables applied to every check command."""
        return dict(self._registry.check_env)

    # ── Loading ──────────────────────────────────────────────────────────

    def load(self, source: Mapping[str, Any] | str | bytes | IO[str] | IO[bytes]) -> Registry:
        """Replace the registry with one built from ``source``.

        ``source`` is an already-decoded mapping, JSON text, or a readable
        stream of JSON. On ConfigError the current registry is kept.
        """
        if isinstance(source, Mapping):
            payload: Any = source
        else:
            if hasattr(source, "read"):
                try:
                    source = source.read()
                except OSError as e:
                    raise ConfigError(f"unable to read check config: {e}") from e
            payload = parse_payload(source)
        return self._swap(load_registry(payload))

    def load_from_file(self, path: str | Path) -> Registry:
        """Replace the registry with the contents of a config file."""
        registry = self._swap(load_registry(read_payload(path)))
        logger.info(
            "Loaded check config %s: %d cluster checks, %d node checks",
            path,
            len(registry.cluster_checks),
            len(registry.node_checks),
        )
        return registry

    def _swap(self, registry: Registry) -> Registry:
        with self._lock:
            self._registry = registry
        return registry

    # ── Selection ────────────────────────────────────────────────────────

    def resolve(self, phase: Phase | str, *names: str) -> list[CheckDefinition]:
        """Return the checks of ``phase`` that apply to this runner's role.

        With ``names``, return exactly those checks (in request order) or
        raise CheckNotFoundError for the first one that does not resolve.
        """
        return self._resolve(self._registry, Phase(phase), names)

    def _resolve(
        self, registry: Registry, phase: Phase, names: tuple[str, ...]
    ) -> list[CheckDefinition]:
        candidates = self._candidates(registry, phase)
        if not names:
            return list(candidates.values())

        selected: list[CheckDefinition] = []
        for name in dict.fromkeys(names):
            check = candidates.get(name)
            if check is None:
                raise CheckNotFoundError(name)
            selected.append(check)
        return selected

    def _candidates(self, registry: Registry, phase: Phase) -> dict[str, CheckDefinition]:
        if phase is Phase.CLUSTER:
            return dict(registry.cluster_checks)

        selection = registry.prestart if phase is Phase.PRESTART else registry.poststart
        candidates: dict[str, CheckDefinition] = {}
        for name in selection:
            check = registry.node_checks[name]
            if check.applies_to(self._role):
                candidates[name] = check
        return candidates

    # ── Operations ───────────────────────────────────────────────────────

    async def cluster(
        self, list_only: bool = False, *names: str, cancel: asyncio.Event | None = None
    ) -> CombinedResult:
        """List or run cluster checks."""
        return await self.run(Phase.CLUSTER, list_only, *names, cancel=cancel)

    async def pre_start(
        self, list_only: bool = False, *names: str, cancel: asyncio.Event | None = None
    ) -> CombinedResult:
        """List or run node checks of the pre-start phase."""
        return await self.run(Phase.PRESTART, list_only, *names, cancel=cancel)

    async def post_start(
        self, list_only: bool = False, *names: str, cancel: asyncio.Event | None = None
    ) -> CombinedResult:
        """List or run node checks of the post-start phase."""
        return await self.run(Phase.POSTSTART, list_only, *names, cancel=cancel)

    async def run(
        self,
        phase: Phase | str,
        list_only: bool = False,
        *names: str,
        cancel: asyncio.Event | None = None,
    ) -> CombinedResult:
        registry = self._registry
        checks = self._resolve(registry, Phase(phase), names)
        if list_only:
            return describe(checks)

        logger.debug("Running %d %s checks", len(checks), Phase(phase).value)
        outcomes = await run_checks(checks, env=registry.check_env, cancel=cancel)
        return aggregate(outcomes)

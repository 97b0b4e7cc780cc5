"""Check execution engine — runs check commands concurrently with hard timeouts.

Every check in a batch is started at once as a child process in its own
session, so that a timeout can kill the whole process group (the command and
anything it spawned). stdout and stderr share a single pipe and come back as
one interleaved text.

Per-check problems (launch failure, timeout) become outcomes with
STATUS_UNKNOWN; they never fail the batch.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Iterable, Mapping

from check_runner.checks.registry import CheckDefinition
from check_runner.errors import LaunchError, TimeoutKillError
from check_runner.runner.results import STATUS_UNKNOWN, CheckOutcome

logger = logging.getLogger(__name__)

# How long to wait for a killed process to release its pipe
KILL_GRACE_SECONDS = 1.0


def format_command(cmd: Iterable[str]) -> str:
    return "[" + " ".join(cmd) + "]"


async def run_checks(
    checks: Iterable[CheckDefinition],
    env: Mapping[str, str] | None = None,
    cancel: asyncio.Event | None = None,
) -> dict[str, CheckOutcome]:
    """Run all checks concurrently and wait until each one has an outcome.

    ``env`` is laid over the host environment for every check. Setting
    ``cancel`` kills whatever is still running and returns right away.
    If the awaiting task is cancelled, running checks are killed before the
    cancellation propagates.
    """
    child_env = {**os.environ, **env} if env else None
    tasks = {
        check.name: asyncio.ensure_future(_run_check(check, child_env, cancel))
        for check in checks
    }
    if not tasks:
        return {}

    try:
        await asyncio.gather(*tasks.values())
    except asyncio.CancelledError:
        for task in tasks.values():
            task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        raise

    return {name: task.result() for name, task in tasks.items()}


async def _run_check(
    check: CheckDefinition,
    env: Mapping[str, str] | None,
    cancel: asyncio.Event | None,
) -> CheckOutcome:
    logger.debug("Starting check %s: %s", check.name, format_command(check.cmd))
    try:
        proc = await _spawn(check.cmd, env)
    except LaunchError as e:
        logger.warning("Check %s failed to start: %s", check.name, e)
        return CheckOutcome(status=STATUS_UNKNOWN, output=str(e))

    try:
        return await _supervise(proc, check, cancel)
    except TimeoutKillError as e:
        logger.warning("Check %s: %s", check.name, e)
        return CheckOutcome(status=STATUS_UNKNOWN, output=str(e))


async def _spawn(cmd: tuple[str, ...], env: Mapping[str, str] | None) -> asyncio.subprocess.Process:
    kwargs = {"start_new_session": True} if os.name == "posix" else {}
    try:
        return await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=env,
            **kwargs,
        )
    except (OSError, ValueError) as e:
        raise LaunchError(f"unable to start command {format_command(cmd)}: {e}") from e


async def _supervise(
    proc: asyncio.subprocess.Process,
    check: CheckDefinition,
    cancel: asyncio.Event | None,
) -> CheckOutcome:
    """Race the process against its deadline and the batch cancel event."""
    communicate = asyncio.ensure_future(proc.communicate())
    waiters: set[asyncio.Future] = {communicate}
    cancelled = None
    if cancel is not None:
        cancelled = asyncio.ensure_future(cancel.wait())
        waiters.add(cancelled)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=check.timeout_seconds, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        _kill(proc)
        await _reap(proc, communicate)
        raise
    finally:
        if cancelled is not None:
            cancelled.cancel()

    if communicate in done:
        stdout, _ = communicate.result()
        return CheckOutcome(status=proc.returncode, output=_decode(stdout))

    _kill(proc)
    await _reap(proc, communicate)

    if cancelled is not None and cancelled in done:
        logger.info("Check %s cancelled", check.name)
        return CheckOutcome(
            status=STATUS_UNKNOWN,
            output=f"command {format_command(check.cmd)} was cancelled and killed",
        )
    raise TimeoutKillError(
        f"command {format_command(check.cmd)} exceeded timeout {check.timeout} and was killed"
    )


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the process and, on POSIX, every process in its group.

    The group can outlive its leader, so it is signalled even when the
    command itself has already exited.
    """
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        elif proc.returncode is None:
            proc.kill()
    except ProcessLookupError:
        pass


async def _reap(proc: asyncio.subprocess.Process, communicate: asyncio.Future) -> None:
    try:
        await asyncio.wait_for(asyncio.shield(communicate), KILL_GRACE_SECONDS)
    except asyncio.TimeoutError:
        # A descendant outside the process group still holds the pipe open
        communicate.cancel()
        await proc.wait()
    except asyncio.CancelledError:
        communicate.cancel()
        raise


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")

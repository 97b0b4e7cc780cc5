"""Tests for the execution engine — outcomes, timeouts, cancellation."""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path

import pytest

from check_runner.checks import CheckDefinition, parse_duration
from check_runner.runner import STATUS_UNKNOWN, CheckOutcome, run_checks
from check_runner.runner.engine import format_command

posix_only = pytest.mark.skipif(os.name != "posix", reason="needs a POSIX shell")


def _check(name: str, cmd: list[str], timeout: str = "1s") -> CheckDefinition:
    return CheckDefinition(
        name=name, cmd=tuple(cmd), timeout=timeout, timeout_seconds=parse_duration(timeout)
    )


class TestFormatCommand:
    def test_brackets_and_spaces(self) -> None:
        assert format_command(("sh", "-c", "sleep 5")) == "[sh -c sleep 5]"


@posix_only
class TestRunChecks:
    def test_empty_batch(self) -> None:
        assert asyncio.run(run_checks([])) == {}

    def test_exit_code_and_output(self) -> None:
        outcomes = asyncio.run(run_checks([
            _check("ok", ["echo", "fine"]),
            _check("critical", ["sh", "-c", "echo broken >&2; exit 2"]),
        ]))
        assert outcomes == {
            "ok": CheckOutcome(status=0, output="fine\n"),
            "critical": CheckOutcome(status=2, output="broken\n"),
        }

    def test_missing_binary(self) -> None:
        outcomes = asyncio.run(run_checks([_check("nope", ["/nonexistent/check-binary"])]))
        outcome = outcomes["nope"]
        assert outcome.status == STATUS_UNKNOWN
        assert "unable to start command [/nonexistent/check-binary]" in outcome.output

    def test_permission_denied(self, tmp_path: Path) -> None:
        script = tmp_path / "check.sh"
        script.write_text("#!/bin/sh\necho hi\n", encoding="utf-8")
        script.chmod(0o644)
        outcome = asyncio.run(run_checks([_check("noexec", [str(script)])]))["noexec"]
        assert outcome.status == STATUS_UNKNOWN
        assert "unable to start command" in outcome.output

    def test_launch_failure_does_not_affect_other_checks(self) -> None:
        outcomes = asyncio.run(run_checks([
            _check("nope", ["/nonexistent/check-binary"]),
            _check("ok", ["true"]),
        ]))
        assert outcomes["ok"] == CheckOutcome(status=0, output="")
        assert outcomes["nope"].status == STATUS_UNKNOWN

    def test_undecodable_output_is_replaced(self) -> None:
        outcome = asyncio.run(run_checks([_check("bin", ["printf", "\\377ok"])]))["bin"]
        assert outcome.status == 0
        assert outcome.output == "�ok"

    def test_env_overlay(self) -> None:
        outcome = asyncio.run(run_checks(
            [_check("env", ["sh", "-c", "echo $OVERLAY_VAR"])],
            env={"OVERLAY_VAR": "from-overlay"},
        ))["env"]
        assert outcome.output == "from-overlay\n"
        assert "OVERLAY_VAR" not in os.environ

    def test_timeout_kills_process_group(self, tmp_path: Path) -> None:
        marker = tmp_path / "survivor"
        # The background child would create the marker if it outlived the kill
        cmd = ["sh", "-c", f"(sleep 1; touch {marker}) & sleep 10"]
        outcome = asyncio.run(run_checks([_check("slow", cmd, "200ms")]))["slow"]

        assert outcome.status == STATUS_UNKNOWN
        assert outcome.output == f"command {format_command(cmd)} exceeded timeout 200ms and was killed"
        time.sleep(1.5)
        assert not marker.exists()

    def test_timeout_kills_group_after_leader_exits(self, tmp_path: Path) -> None:
        marker = tmp_path / "survivor"
        # The shell exits at once; its background child keeps the output pipe open
        cmd = ["sh", "-c", f"(sleep 2; touch {marker}) & exit 0"]
        outcome = asyncio.run(run_checks([_check("orphan", cmd, "300ms")]))["orphan"]

        assert outcome.status == STATUS_UNKNOWN
        assert outcome.output == f"command {format_command(cmd)} exceeded timeout 300ms and was killed"
        time.sleep(2.5)
        assert not marker.exists()

    def test_cancel_event_kills_running_checks(self) -> None:
        async def scenario() -> tuple[dict[str, CheckOutcome], float]:
            cancel = asyncio.Event()
            loop = asyncio.get_running_loop()
            loop.call_later(0.3, cancel.set)
            t0 = time.perf_counter()
            outcomes = await run_checks(
                [_check("fast", ["true"], "5s"), _check("slow", ["sleep", "10"], "5s")],
                cancel=cancel,
            )
            return outcomes, time.perf_counter() - t0

        outcomes, elapsed = asyncio.run(scenario())
        assert elapsed < 3
        assert outcomes["fast"] == CheckOutcome(status=0, output="")
        assert outcomes["slow"] == CheckOutcome(
            status=STATUS_UNKNOWN, output="command [sleep 10] was cancelled and killed"
        )

    def test_task_cancellation_kills_children(self, tmp_path: Path) -> None:
        marker = tmp_path / "survivor"
        cmd = ["sh", "-c", f"sleep 1; touch {marker}"]

        async def scenario() -> None:
            task = asyncio.ensure_future(run_checks([_check("slow", cmd, "5s")]))
            await asyncio.sleep(0.3)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        time.sleep(1.5)
        assert not marker.exists()

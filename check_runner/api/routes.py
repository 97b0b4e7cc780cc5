"""Check runner API endpoints.

  GET  <base>/{check_type}/   — list checks (names from ?check=...)
  POST <base>/{check_type}/   — run checks (names from the body, or ?check=... without one)

check_type is "cluster" or "node"; "node" serves the post-start node checks.
"""

from __future__ import annotations

import asyncio
import re

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictStr, ValidationError
from python_multipart.multipart import parse_options_header

from check_runner.api.middleware import request_logger
from check_runner.errors import CheckNotFoundError, CheckRunnerError
from check_runner.runner import CombinedResult, Phase, Runner

router = APIRouter()

CHECK_TYPES = {
    "cluster": Phase.CLUSTER,
    "node": Phase.POSTSTART,
}

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"
RESPONSE_CONTENT_TYPE = "application/json; charset=utf-8"

DISCONNECT_POLL_SECONDS = 0.5

# Token grammar of the type part; parse_options_header does not check it
_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_MEDIA_TYPE = re.compile(rf"^{_TOKEN}(?:/{_TOKEN})?$")


# ── Pydantic models ──────────────────────────────────────────────────────────


class CheckSelection(BaseModel):
    check: list[StrictStr] = []


# ── Helpers ──────────────────────────────────────────────────────────────────


def parse_media_type(header: str) -> str:
    """Return the lower-cased media type of a Content-Type header value."""
    try:
        raw_type, _ = parse_options_header(header)
    except (AssertionError, ValueError) as e:
        raise ValueError(f"invalid media type {header!r}") from e
    media_type = raw_type.decode("latin-1").strip().lower()
    if not _MEDIA_TYPE.match(media_type):
        raise ValueError(f"invalid media type {header!r}")
    return media_type


def _phase_from_path(check_type: str) -> Phase:
    phase = CHECK_TYPES.get(check_type)
    if phase is None:
        raise HTTPException(status_code=404, detail=f"unrecognized check type: {check_type}")
    return phase


def _checks_from_query(request: Request) -> list[str]:
    return request.query_params.getlist("check")


async def _checks_from_body(request: Request) -> list[str]:
    """Decode the requested check names according to the Content-Type."""
    header = request.headers.get("content-type", "")
    body = await request.body()
    if not header:
        return _checks_from_query(request)

    try:
        media_type = parse_media_type(header)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"unable to parse Content-Type: {e}")

    if media_type == JSON_CONTENT_TYPE:
        try:
            return CheckSelection.model_validate_json(body or b"null").check
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"invalid JSON body: {e}")

    if media_type == FORM_CONTENT_TYPE:
        form = await request.form()
        return [value for value in form.getlist("check") if isinstance(value, str)]

    raise HTTPException(status_code=415, detail=f"unsupported Content-Type: {media_type}")


async def _cancel_on_disconnect(request: Request, cancel: asyncio.Event) -> None:
    while not cancel.is_set():
        if await request.is_disconnected():
            request_logger(request).info("Client disconnected, cancelling checks")
            cancel.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


def _json_response(result: CombinedResult) -> JSONResponse:
    return JSONResponse(result.to_dict(), media_type=RESPONSE_CONTENT_TYPE)


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("/{check_type}/")
async def list_checks(check_type: str, request: Request) -> JSONResponse:
    """List the checks of a type, optionally only the named ones."""
    phase = _phase_from_path(check_type)
    runner: Runner = request.app.state.runner

    try:
        result = await runner.run(phase, True, *_checks_from_query(request))
    except CheckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CheckRunnerError:
        request_logger(request).exception("Error listing checks")
        raise HTTPException(status_code=500, detail="Error listing checks")

    return _json_response(result)


@router.post("/{check_type}/")
async def run_checks(check_type: str, request: Request) -> JSONResponse:
    """Run the checks of a type, optionally only the named ones."""
    phase = _phase_from_path(check_type)
    runner: Runner = request.app.state.runner
    checks = await _checks_from_body(request)

    cancel = asyncio.Event()
    watcher = asyncio.ensure_future(_cancel_on_disconnect(request, cancel))
    try:
        result = await runner.run(phase, False, *checks, cancel=cancel)
    except CheckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CheckRunnerError:
        request_logger(request).exception("Error running checks")
        raise HTTPException(status_code=500, detail="Error running checks")
    finally:
        watcher.cancel()

    return _json_response(result)

"""Router for POST /api/pdf/{operation}: run a document operation and store its outputs."""

from __future__ import annotations

import asyncio
import base64
import functools
import io
import json
import time
import zipfile
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from app.config import settings
from app.errors import (
    DocumentServiceError,
    NotFoundError,
    ProcessingTimeoutError,
    RateLimitError,
    ResourceTooLargeError,
    ValidationError,
)
from app.operations.catalog import registry
from app.operations.registry import OperationResult, SourceFile
from app.schemas.common import ArtifactLink, ErrorResponse, FileInput, OperationData, OperationResponse
from app.services.naming import stem_of
from app.storage.artifacts import ArtifactInfo, ArtifactStore
from app.storage.rate_limit import client_key

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["operations"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def enforce_rate_limit(request: Request, response: Response) -> None:
    """Count the request against the client's window; 429 once exhausted."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return
    key = client_key(request.headers, request.client.host if request.client else None)
    structlog.contextvars.bind_contextvars(client=key)
    decision = limiter.hit(key)
    if not decision.allowed:
        raise RateLimitError(
            f"Rate limit exceeded for {key}",
            retry_after=decision.retry_after(time.time()),
            user_message="Too many requests, please try again later",
        )
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(int(decision.reset_at))


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------

async def read_operation_request(request: Request) -> tuple[list[SourceFile], dict[str, Any]]:
    """Accept either a JSON body with base64 files or a multipart upload."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        return await _read_multipart(request)
    return await _read_json(request)


async def _read_json(request: Request) -> tuple[list[SourceFile], dict[str, Any]]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    raw_files = []
    if body.get("file") is not None:
        raw_files.append(body.pop("file"))
    if body.get("files") is not None:
        if not isinstance(body["files"], list):
            raise ValidationError("'files' must be a list")
        raw_files.extend(body.pop("files"))
    body.pop("file", None)
    body.pop("files", None)

    sources = []
    for raw in raw_files:
        try:
            item = FileInput.model_validate(raw)
        except ValueError as exc:
            raise ValidationError(f"Invalid file entry: {exc}") from exc
        if item.decoded_size_estimate() > settings.max_upload_bytes:
            raise _too_large(item.name)
        sources.append(_checked(SourceFile(item.name, item.decode(), item.content_type)))
    return sources, body


async def _read_multipart(request: Request) -> tuple[list[SourceFile], dict[str, Any]]:
    form = await request.form()
    sources: list[SourceFile] = []
    payload: dict[str, Any] = {}
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key not in ("file", "files"):
                continue
            content = await value.read()
            sources.append(_checked(SourceFile(value.filename or "upload", content, value.content_type)))
        elif key == "options":
            try:
                options = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValidationError("'options' must be a JSON object") from exc
            if not isinstance(options, dict):
                raise ValidationError("'options' must be a JSON object")
            payload.update(options)
        else:
            payload[key] = _form_value(value)
    return sources, payload


def _form_value(value: str) -> Any:
    """Plain form fields are strings; JSON arrays and objects are decoded."""
    stripped = value.strip()
    if stripped[:1] in ("[", "{"):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return value
    return value


def _checked(source: SourceFile) -> SourceFile:
    if len(source.content) > settings.max_upload_bytes:
        raise _too_large(source.name)
    if not source.content:
        raise ValidationError(f"File '{source.name}' is empty")
    return source


def _too_large(name: str) -> ResourceTooLargeError:
    limit_mb = settings.max_upload_bytes / (1024 * 1024)
    return ResourceTooLargeError(f"File '{name}' exceeds the {limit_mb:g} MB limit")


# ---------------------------------------------------------------------------
# Execution and persistence
# ---------------------------------------------------------------------------

async def execute(name: str, sources: list[SourceFile], payload: dict[str, Any]) -> OperationResult:
    """Run the operation off the event loop, bounded by the configured timeout.

    On timeout the worker thread is left to finish; its result is dropped
    and never persisted.
    """
    call = functools.partial(registry.run, name, sources, payload)
    timeout = settings.operation_timeout_seconds
    if not timeout or timeout <= 0:
        return await run_in_threadpool(call)

    task = asyncio.ensure_future(run_in_threadpool(call))
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout)
    except asyncio.TimeoutError:
        task.add_done_callback(_discard_late_result)
        logger.warning("operation_timeout", operation=name, timeout_seconds=timeout)
        raise ProcessingTimeoutError(
            f"Operation {name} exceeded {timeout:g}s",
            user_message="Processing took too long and was abandoned",
        ) from None


def _discard_late_result(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.info("late_operation_failed", error=str(task.exception()))


def persist(store: ArtifactStore, name: str, result: OperationResult) -> OperationData:
    """Store every output (plus a zip bundle when there are several)."""
    saved: list[ArtifactInfo] = []
    try:
        for output in result.outputs:
            saved.append(store.put(output.content, output.filename, name))
        bundle = None
        primary_content = result.outputs[0].content
        if len(result.outputs) > 1:
            primary_content = _zip_outputs(result)
            bundle = store.put(primary_content, f"{stem_of(result.outputs[0].filename)}_{name}.zip", name)
    except DocumentServiceError:
        for info in saved:
            store.delete(info.name)
        raise

    primary = bundle or saved[0]
    return OperationData(
        filename=primary.name,
        size=primary.size,
        download_url=download_url(primary.name),
        data=base64.b64encode(primary_content).decode("ascii"),
        report=result.report,
        files=[
            ArtifactLink(filename=info.name, size=info.size, download_url=download_url(info.name))
            for info in saved
        ] if bundle else None,
    )


def _zip_outputs(result: OperationResult) -> bytes:
    buf = io.BytesIO()
    seen: set[str] = set()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for i, output in enumerate(result.outputs, start=1):
            arcname = output.filename if output.filename not in seen else f"{i:03d}_{output.filename}"
            seen.add(arcname)
            zf.writestr(arcname, output.content)
    return buf.getvalue()


def download_url(name: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/download/{name}"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/operations")
async def list_operations():
    """List every operation with its options schema."""
    return {"operations": registry.describe()}


@router.post(
    "/pdf/{operation}",
    response_model=OperationResponse,
    responses={code: {"model": ErrorResponse} for code in (400, 401, 404, 408, 413, 415, 422, 429, 503)},
    dependencies=[Depends(enforce_rate_limit)],
)
async def run_operation(operation: str, request: Request):
    """Run ``operation`` on the uploaded file(s) and return the stored result.

    Accepts JSON (``file``/``files`` as base64 plus options) or multipart
    (``file``/``files`` uploads plus an ``options`` JSON field).
    """
    if operation not in registry.names():
        raise NotFoundError(f"Unknown operation '{operation}'")
    structlog.contextvars.bind_contextvars(operation=operation)

    sources, payload = await read_operation_request(request)
    result = await execute(operation, sources, payload)
    data = await run_in_threadpool(persist, request.app.state.artifact_store, operation, result)

    return OperationResponse(message=result.message, data=data)

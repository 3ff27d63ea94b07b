"""FastAPI wrapper for packet-builder core operations."""

from __future__ import annotations

import importlib.metadata
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Annotated, Any, TypeVar, get_args

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.config.settings import AppSettings, load_settings
from core.mapping.models import BUILT_IN_PROPERTIES, ComputedKind
from core.mapping.targets import computed_value_key
from core.messages.models import MessageTemplate, TokenMode
from core.messages.tokens import LEGACY_TOKENS, SYSTEM_TOKENS
from core.orchestrator.reports import preview_csv, render_messages, suggest_mapping

app = FastAPI(title="packet-builder API", version="0.1.0")
logger = logging.getLogger("packet.api")

REQUEST_ID_HEADER = "X-Packet-Request-Id"

_DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
_UPLOAD_CHUNK_SIZE = 64 * 1024

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


class MappingSuggestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    headers: list[str] = Field(default_factory=list)
    fields: list[str]
    existing: dict[str, str] = Field(default_factory=dict)


class MessageRenderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    csv_text: str
    subject: str = ""
    body: str = ""
    packet_title: str = ""
    token_mode: TokenMode | None = None
    token_bindings: dict[str, str] = Field(default_factory=dict)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/v1/meta")
async def meta_v1(request: Request) -> JSONResponse:
    """Vocabulary and limits for client bootstrap."""

    request_id = _request_id_from_request(request)
    if not _meta_enabled():
        return _error_response(
            status_code=404,
            error_code="NOT_FOUND",
            message="meta endpoint is disabled",
            request_id=request_id,
            detail={"path": request.url.path},
        )

    payload = {
        "version": _package_version(),
        "token_modes": list(get_args(TokenMode)),
        "system_tokens": sorted(SYSTEM_TOKENS),
        "legacy_tokens": list(LEGACY_TOKENS),
        "built_in_properties": list(BUILT_IN_PROPERTIES),
        "computed_targets": [computed_value_key(kind) for kind in get_args(ComputedKind)],
        "max_upload_bytes": _max_upload_bytes(),
    }
    return JSONResponse(status_code=200, headers={REQUEST_ID_HEADER: request_id}, content=payload)


@app.post("/v1/csv/preview", response_model=None)
async def csv_preview_v1(
    request: Request,
    csv_file: Annotated[UploadFile, File(...)],
    max_rows: Annotated[int | None, Form()] = None,
) -> JSONResponse:
    """Preview an uploaded CSV: header hints, sample rows, detected columns."""

    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "load_settings"
        settings = _load_app_settings()

        failure_stage = "upload"
        _validate_upload_name(csv_file.filename, expected_suffix=".csv", field_name="csv_file")
        raw = _read_upload_with_limit(
            upload=csv_file, max_bytes=_max_upload_bytes(), field_name="csv_file"
        )

        failure_stage = "decode"
        text = _decode_csv(raw, field_name="csv_file")
        if max_rows is not None and max_rows < 0:
            raise ApiRequestError(
                status_code=400,
                error_code="INVALID_ARGUMENT",
                message="max_rows must be zero or greater",
                detail={"field": "max_rows", "value": max_rows},
            )

        failure_stage = "preview"
        report = preview_csv(
            text, max_rows=settings.csv_preview_max_rows if max_rows is None else max_rows
        )
        _log_event(
            logging.INFO,
            "csv_preview",
            request_id,
            rows=report.row_count,
            recipients=report.recipient_count,
        )
        return JSONResponse(
            status_code=200,
            headers={REQUEST_ID_HEADER: request_id},
            content=report.model_dump(mode="json"),
        )
    except Exception as exc:  # noqa: BLE001
        return _failure_response(exc, request_id, failure_stage)


@app.post("/v1/mapping/suggest", response_model=None)
async def mapping_suggest_v1(request: Request) -> JSONResponse:
    """Suggest PDF field mappings for a set of CSV headers."""

    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "validate_inputs"
        body = await _read_json_body(request, MappingSuggestRequest)

        failure_stage = "automap"
        suggestion = suggest_mapping(body.headers, body.fields, body.existing)
        _log_event(
            logging.INFO,
            "mapping_suggest",
            request_id,
            fields=len(body.fields),
            newly_mapped=len(suggestion.newly_mapped),
        )
        return JSONResponse(
            status_code=200,
            headers={REQUEST_ID_HEADER: request_id},
            content=suggestion.model_dump(mode="json"),
        )
    except Exception as exc:  # noqa: BLE001
        return _failure_response(exc, request_id, failure_stage)


@app.post("/v1/messages/render", response_model=None)
async def messages_render_v1(request: Request) -> JSONResponse:
    """Render a message template for every recipient of an inline CSV."""

    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "load_settings"
        settings = _load_app_settings()

        failure_stage = "validate_inputs"
        body = await _read_json_body(request, MessageRenderRequest)
        if body.token_mode is not None:
            settings = settings.model_copy(update={"token_mode": body.token_mode})

        failure_stage = "render"
        template = MessageTemplate(
            subject=body.subject,
            body=body.body,
            is_enabled=True,
            token_bindings=body.token_bindings,
        )
        messages = render_messages(
            body.csv_text, template, settings, packet_title=body.packet_title
        )
        _log_event(
            logging.INFO,
            "messages_render",
            request_id,
            messages=len(messages),
            token_mode=settings.token_mode,
        )
        return JSONResponse(
            status_code=200,
            headers={REQUEST_ID_HEADER: request_id},
            content={
                "token_mode": settings.token_mode,
                "messages": [message.model_dump(mode="json") for message in messages],
            },
        )
    except Exception as exc:  # noqa: BLE001
        return _failure_response(exc, request_id, failure_stage)


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    generated = uuid.uuid4().hex
    request.state.request_id = generated
    return generated


def _meta_enabled() -> bool:
    raw = os.getenv("PACKET_ENABLE_META", "1").strip().lower()
    return raw not in {"0", "false", "off", "no"}


def _max_upload_bytes() -> int:
    raw = os.getenv("PACKET_MAX_UPLOAD_BYTES")
    if raw is None:
        return _DEFAULT_MAX_UPLOAD_BYTES
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_UPLOAD_BYTES
    return parsed if parsed > 0 else _DEFAULT_MAX_UPLOAD_BYTES


def _load_app_settings() -> AppSettings:
    raw = os.getenv("PACKET_SETTINGS_PATH", "").strip()
    try:
        return load_settings(Path(raw) if raw else None)
    except ValueError as exc:
        raise ApiRequestError(
            status_code=500,
            error_code="CONFIG_ERROR",
            message="settings could not be loaded",
            detail={"error": str(exc)},
        ) from exc


def _validate_upload_name(filename: str | None, *, expected_suffix: str, field_name: str) -> None:
    if filename is None or not filename.lower().endswith(expected_suffix):
        raise ApiRequestError(
            status_code=415,
            error_code="INVALID_MEDIA_TYPE",
            message=f"{field_name} must be a {expected_suffix} file",
            detail={"field": field_name, "filename": filename},
        )


def _read_upload_with_limit(*, upload: UploadFile, max_bytes: int, field_name: str) -> bytes:
    buffer = bytearray()
    source = upload.file
    source.seek(0)

    while True:
        chunk = source.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise ApiRequestError(
                status_code=413,
                error_code="UPLOAD_TOO_LARGE",
                message=f"{field_name} exceeds upload size limit",
                detail={
                    "field": field_name,
                    "max_bytes": max_bytes,
                    "received_bytes": len(buffer),
                },
            )

    source.close()
    return bytes(buffer)


def _decode_csv(raw: bytes, *, field_name: str) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ENCODING",
            message=f"{field_name} must be UTF-8 text",
            detail={"field": field_name},
        ) from exc


async def _read_json_body(request: Request, model: type[ModelT]) -> ModelT:
    raw = await request.body()
    max_bytes = _max_upload_bytes()
    if len(raw) > max_bytes:
        raise ApiRequestError(
            status_code=413,
            error_code="UPLOAD_TOO_LARGE",
            message="request body exceeds upload size limit",
            detail={"max_bytes": max_bytes, "received_bytes": len(raw)},
        )

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be valid UTF-8 JSON",
            detail={"error": str(exc)},
        ) from exc

    if not isinstance(payload, dict):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be a JSON object",
        )

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="request body schema validation failed",
            detail={"error": str(exc)},
        ) from exc


def _failure_response(exc: Exception, request_id: str, failure_stage: str) -> JSONResponse:
    if isinstance(exc, ApiRequestError):
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code=exc.error_code,
            status_code=exc.status_code,
            failure_stage=failure_stage,
        )
        return _error_response(
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            request_id=request_id,
            detail=exc.detail,
        )

    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code="INTERNAL_ERROR",
        status_code=500,
        failure_stage=failure_stage,
    )
    return _error_response(
        status_code=500,
        error_code="INTERNAL_ERROR",
        message="internal server error",
        request_id=request_id,
        detail={"error": str(exc)},
    )


def _package_version() -> str:
    try:
        return importlib.metadata.version("packet-builder")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "request_id": request_id,
            "detail": payload_detail,
        },
    )


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))

"""Operation registry: maps operation names to option models and handlers."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Callable, Optional

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.errors import UnsupportedTypeError, ValidationError
from app.schemas.options import OperationOptions
from app.services.document import Document

logger = structlog.get_logger(__name__)

_OPTIONS_ADAPTER = TypeAdapter(OperationOptions)


class InputKind(str, enum.Enum):
    SINGLE = "single"  # one PDF, loaded into a Document before dispatch
    MANY = "many"      # list of SourceFile
    RAW = "raw"        # one SourceFile, handler parses it


@dataclass
class SourceFile:
    name: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        return PurePath(self.name).suffix.lower().lstrip(".")

    def looks_like_pdf(self) -> bool:
        return (
            self.extension == "pdf"
            or self.content_type == "application/pdf"
            or self.content.startswith(b"%PDF")
        )


@dataclass
class OutputFile:
    filename: str
    content: bytes
    media_type: str = "application/pdf"


@dataclass
class OperationResult:
    outputs: list[OutputFile]
    report: dict[str, Any] = field(default_factory=dict)
    message: str = "Operation completed"


@dataclass
class Operation:
    name: str
    options_model: type
    inputs: InputKind
    handler: Callable[..., OperationResult]
    summary: str = ""


class OperationRegistry:
    """Single dispatch table for every supported operation."""

    def __init__(self) -> None:
        self._operations: dict[str, Operation] = {}

    def register(self, name: str, options_model: type, *, inputs: InputKind = InputKind.SINGLE):
        def decorator(func: Callable[..., OperationResult]):
            if name in self._operations:
                raise RuntimeError(f"Operation '{name}' registered twice")
            summary = (func.__doc__ or "").strip().splitlines()[0] if func.__doc__ else ""
            self._operations[name] = Operation(name, options_model, inputs, func, summary)
            return func

        return decorator

    def names(self) -> list[str]:
        return sorted(self._operations)

    def get(self, name: str) -> Operation:
        try:
            return self._operations[name]
        except KeyError:
            raise ValidationError(f"Unknown operation '{name}'") from None

    def describe(self) -> list[dict]:
        return [
            {
                "name": op.name,
                "inputs": op.inputs.value,
                "summary": op.summary,
                "options": op.options_model.model_json_schema(by_alias=False),
            }
            for op in (self._operations[n] for n in self.names())
        ]

    def parse_options(self, name: str, payload: dict[str, Any]):
        """Validate ``payload`` as the options of operation ``name``."""
        op = self.get(name)
        try:
            options = _OPTIONS_ADAPTER.validate_python({**payload, "operation": name})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid options for {name}: {_describe(exc, name)}") from exc
        if not isinstance(options, op.options_model):
            raise ValidationError(f"Options do not match operation '{name}'")
        return options

    def run(self, name: str, sources: list[SourceFile], payload: dict[str, Any]) -> OperationResult:
        """Validate options, prepare inputs and run the handler."""
        op = self.get(name)
        options = self.parse_options(name, payload)

        if not sources:
            raise ValidationError("No input file provided")
        if op.inputs is not InputKind.MANY and len(sources) != 1:
            raise ValidationError(f"Operation '{name}' takes exactly one file")

        started = time.monotonic()
        if op.inputs is InputKind.SINGLE:
            source = sources[0]
            if not source.looks_like_pdf():
                raise UnsupportedTypeError(f"'{source.name}' is not a PDF file")
            doc = Document.load(source.content, name=source.name)
            doc.require_pages()
            result = op.handler(doc, options)
        elif op.inputs is InputKind.RAW:
            result = op.handler(sources[0], options)
        else:
            result = op.handler(sources, options)

        logger.info(
            "operation_completed",
            operation=name,
            inputs=len(sources),
            outputs=len(result.outputs),
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return result


def _describe(exc: PydanticValidationError, name: str) -> str:
    parts = []
    for err in exc.errors():
        loc_parts = [str(p) for p in err["loc"]]
        if loc_parts and loc_parts[0] == name:
            loc_parts = loc_parts[1:]
        loc = ".".join(loc_parts)
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


registry = OperationRegistry()

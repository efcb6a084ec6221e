"""Request and response envelopes shared by the operation endpoints."""

from __future__ import annotations

import base64
import binascii
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.errors import ValidationError


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class FileInput(BaseModel):
    """A file sent inline as base64."""

    name: str = Field(min_length=1, max_length=255)
    data: str = Field(min_length=1, description="Base64 content, optionally a data: URI")
    content_type: Optional[str] = None

    def decode(self) -> bytes:
        data = self.data
        if data.startswith("data:"):
            data = data.partition(",")[2]
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError(f"File '{self.name}' is not valid base64") from exc

    def decoded_size_estimate(self) -> int:
        return len(self.data) * 3 // 4


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

class ArtifactLink(BaseModel):
    filename: str
    size: int
    download_url: str = Field(serialization_alias="downloadUrl")


class OperationData(BaseModel):
    filename: str
    size: int
    download_url: str = Field(serialization_alias="downloadUrl")
    data: Optional[str] = Field(default=None, description="Base64 of the primary artifact")
    report: dict[str, Any] = Field(default_factory=dict)
    files: Optional[list[ArtifactLink]] = None


class OperationResponse(BaseModel):
    success: bool = True
    message: str
    data: OperationData


class ErrorResponse(BaseModel):
    error: str
    code: str

"""Per-operation option models.

Each model carries a literal ``operation`` tag; together they form the
closed ``OperationOptions`` union that the registry validates against.
Field names are snake_case; camelCase aliases are accepted as well.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Unit = Literal["pt", "px", "mm", "in"]
Anchor = Literal["center", "top-left", "top-right", "bottom-left", "bottom-right"]
EdgeAnchor = Literal[
    "top-left", "top-center", "top-right", "bottom-left", "bottom-center", "bottom-right"
]
# "all", a list of 1-based page numbers, or a range expression like "1-3,5"
PageSelection = Union[list[int], str]

HEX_COLOR = r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$"


class _Options(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")


class _Area(_Options):
    page: int = Field(default=1, ge=1)
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)


# ---------------------------------------------------------------------------
# Page structure
# ---------------------------------------------------------------------------

class MergeOptions(_Options):
    operation: Literal["merge"] = "merge"
    output_name: Optional[str] = Field(default=None, max_length=120)
    add_toc: bool = True
    toc_threshold: Optional[int] = Field(default=None, ge=1)


class SplitOptions(_Options):
    operation: Literal["split"] = "split"
    mode: Literal["single", "range", "every"] = "single"
    pages: Optional[list[int]] = None
    range: Optional[str] = None
    every: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_mode(self):
        if self.mode == "range" and not (self.pages or self.range):
            raise ValueError("range mode needs 'range' or 'pages'")
        if self.mode == "every" and self.every is None:
            raise ValueError("every mode needs 'every'")
        return self


class RotateOptions(_Options):
    operation: Literal["rotate"] = "rotate"
    angle: int = 90
    mode: Literal["relative", "absolute"] = "relative"
    pages: PageSelection = "all"

    @field_validator("angle")
    @classmethod
    def _check_angle(cls, v: int) -> int:
        if v not in (90, 180, 270):
            raise ValueError("angle must be 90, 180 or 270")
        return v


class OrganizeStep(_Options):
    type: Literal["move", "delete"]
    source_page: int = Field(ge=1)
    target_page: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_target(self):
        if self.type == "move" and self.target_page is None:
            raise ValueError("move needs 'target_page'")
        return self


class OrganizeOptions(_Options):
    operation: Literal["organize"] = "organize"
    operations: list[OrganizeStep] = Field(min_length=1)


class Margins(_Options):
    top: float = Field(default=0, ge=0)
    right: float = Field(default=0, ge=0)
    bottom: float = Field(default=0, ge=0)
    left: float = Field(default=0, ge=0)


class CropOptions(_Options):
    operation: Literal["crop"] = "crop"
    margins: Margins = Field(default_factory=Margins)
    units: Unit = "pt"
    pages: PageSelection = "all"


# ---------------------------------------------------------------------------
# Size, security, repair
# ---------------------------------------------------------------------------

class CompressOptions(_Options):
    operation: Literal["compress"] = "compress"
    level: Literal["low", "medium", "high"] = "medium"


class Permissions(_Options):
    printing: bool = True
    copying: bool = False
    modifying: bool = False
    annotating: bool = False


class ProtectOptions(_Options):
    operation: Literal["protect"] = "protect"
    password: str = Field(min_length=4)
    owner_password: Optional[str] = Field(default=None, min_length=4)
    permissions: Permissions = Field(default_factory=Permissions)
    algorithm: Literal["AES-256", "AES-128", "RC4-128"] = "AES-256"


class UnlockOptions(_Options):
    operation: Literal["unlock"] = "unlock"
    password: str = Field(min_length=1)


class RepairOptions(_Options):
    operation: Literal["repair"] = "repair"
    attempt_recovery: bool = True
    keep_metadata: bool = True


class PdfaOptions(_Options):
    operation: Literal["pdfa"] = "pdfa"
    compliance_level: Literal["PDF/A-1b", "PDF/A-2b", "PDF/A-3b"] = "PDF/A-1b"
    title: Optional[str] = Field(default=None, max_length=200)
    author: Optional[str] = Field(default=None, max_length=200)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

class CompareOptions(_Options):
    operation: Literal["compare"] = "compare"
    case_sensitive: bool = False
    max_listed: int = Field(default=50, ge=1, le=500)
    output_name: Optional[str] = Field(default=None, max_length=120)


# ---------------------------------------------------------------------------
# Stamping
# ---------------------------------------------------------------------------

class WatermarkOptions(_Options):
    operation: Literal["watermark"] = "watermark"
    type: Literal["text", "image"] = "text"
    text: Optional[str] = Field(default=None, max_length=500)
    image: Optional[str] = None
    position: Union[Anchor, Literal["tiled"]] = "center"
    opacity: float = Field(default=0.3, ge=0, le=1)
    rotation: float = 45
    font_size: float = Field(default=48, gt=0, le=400)
    color: str = Field(default="#808080", pattern=HEX_COLOR)
    scale: float = Field(default=0.5, gt=0, le=1)
    margin: float = Field(default=36, ge=0)
    pages: PageSelection = "all"

    @model_validator(mode="after")
    def _check_content(self):
        if self.type == "text" and not (self.text and self.text.strip()):
            raise ValueError("text watermark needs 'text'")
        if self.type == "image" and not self.image:
            raise ValueError("image watermark needs 'image'")
        return self


class RedactArea(_Area):
    pass


class RedactOptions(_Options):
    operation: Literal["redact"] = "redact"
    areas: list[RedactArea] = Field(min_length=1)
    units: Unit = "pt"
    color: str = Field(default="#000000", pattern=HEX_COLOR)
    label: Optional[str] = Field(default=None, max_length=60)


_NUMBER_FORMAT_ALIASES = {
    "1": "n",
    "Page 1": "page_n",
    "1 of N": "n_of_total",
    "Page 1 of N": "page_n_of_total",
}


class PageNumberOptions(_Options):
    operation: Literal["page-numbers"] = "page-numbers"
    format: Literal["n", "page_n", "n_of_total", "page_n_of_total"] = "n"
    position: EdgeAnchor = "bottom-center"
    margin: float = Field(default=36, ge=0)
    units: Unit = "pt"
    start_from: int = Field(default=1, ge=1)
    font_size: float = Field(default=12, gt=0, le=200)
    color: str = Field(default="#000000", pattern=HEX_COLOR)
    pages: PageSelection = "all"

    @field_validator("format", mode="before")
    @classmethod
    def _format_alias(cls, v):
        return _NUMBER_FORMAT_ALIASES.get(v, v)


class SignaturePosition(_Area):
    pass


class SignOptions(_Options):
    operation: Literal["sign"] = "sign"
    type: Literal["text", "image", "drawing"] = "text"
    text: Optional[str] = Field(default=None, max_length=200)
    image: Optional[str] = None
    drawing: Optional[str] = None
    position: SignaturePosition
    units: Unit = "pt"
    font_size: Optional[float] = Field(default=None, gt=0, le=200)
    color: str = Field(default="#000000", pattern=HEX_COLOR)
    opacity: float = Field(default=1.0, ge=0, le=1)
    add_timestamp: bool = True

    @model_validator(mode="after")
    def _check_content(self):
        content = {"text": self.text, "image": self.image, "drawing": self.drawing}[self.type]
        if not (content and content.strip()):
            raise ValueError(f"{self.type} signature needs '{self.type}'")
        return self


class EditItem(_Options):
    type: Literal["text", "rectangle", "image", "note"]
    page: int = Field(default=1, ge=1)
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    text: Optional[str] = Field(default=None, max_length=2000)
    image: Optional[str] = None
    font_size: float = Field(default=12, gt=0, le=200)
    color: str = Field(default="#000000", pattern=HEX_COLOR)
    fill: bool = False

    @model_validator(mode="after")
    def _check_item(self):
        if self.type in ("text", "note") and not self.text:
            raise ValueError(f"{self.type} edit needs 'text'")
        if self.type in ("rectangle", "image") and (self.width is None or self.height is None):
            raise ValueError(f"{self.type} edit needs 'width' and 'height'")
        if self.type == "image" and not self.image:
            raise ValueError("image edit needs 'image'")
        return self


class EditOptions(_Options):
    operation: Literal["edit"] = "edit"
    edits: list[EditItem] = Field(min_length=1)
    units: Unit = "pt"


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

class ConvertOptions(_Options):
    operation: Literal["convert"] = "convert"
    target: Literal["pdf", "docx", "xlsx", "pptx", "jpg", "png"]
    pages: PageSelection = "all"
    dpi: int = Field(default=150, ge=36, le=600)
    quality: int = Field(default=85, ge=1, le=100)
    sheet_layout: Literal["per-page", "single"] = "per-page"
    page_size: Literal["A4", "Letter", "Legal"] = "A4"
    margin: float = Field(default=36, ge=0, le=144)
    # grayscale, auto-contrast and sharpen images before placing them
    enhance_scan: bool = False
    output_name: Optional[str] = Field(default=None, max_length=120)


OperationOptions = Annotated[
    Union[
        MergeOptions,
        SplitOptions,
        RotateOptions,
        OrganizeOptions,
        CropOptions,
        CompressOptions,
        ProtectOptions,
        UnlockOptions,
        RepairOptions,
        PdfaOptions,
        CompareOptions,
        WatermarkOptions,
        RedactOptions,
        PageNumberOptions,
        SignOptions,
        EditOptions,
        ConvertOptions,
    ],
    Field(discriminator="operation"),
]

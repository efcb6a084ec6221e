"""Ephemeral artifact storage with age-based expiry."""

from __future__ import annotations

import abc
import json
import os
import time
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path, PurePath
from typing import Callable, Optional

import structlog

from app.config import settings
from app.errors import NotFoundError, StorageUnavailableError, ValidationError
from app.services.naming import stem_of

logger = structlog.get_logger(__name__)

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "zip": "application/zip",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "jpg": "image/jpeg",
    "png": "image/png",
}

ALLOWED_EXTENSIONS = frozenset(CONTENT_TYPES)


@dataclass(frozen=True)
class ArtifactInfo:
    name: str
    size: int
    created_at: float
    source_operation: str

    @property
    def extension(self) -> str:
        return extension_of(self.name)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self.extension]


@dataclass(frozen=True)
class Artifact:
    info: ArtifactInfo
    content: bytes


@dataclass
class SweepResult:
    scanned: int = 0
    removed: int = 0
    bytes_freed: int = 0
    errors: int = 0


# ---------------------------------------------------------------------------
# Name validation
# ---------------------------------------------------------------------------

def extension_of(name: str) -> str:
    return PurePath(name).suffix.lower().lstrip(".")


def validate_name(name: str) -> str:
    """Reject traversal attempts and non-whitelisted extensions."""
    if not name or ".." in name or "/" in name or "\\" in name:
        raise ValidationError(f"Invalid file name '{name}'", user_message="Invalid filename")
    if extension_of(name) not in ALLOWED_EXTENSIONS:
        raise ValidationError(f"File type not allowed: '{name}'", user_message="File type not allowed")
    return name


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------

class ArtifactStore(abc.ABC):
    """Storage for operation outputs. Artifacts are never modified once written."""

    @abc.abstractmethod
    def put(self, content: bytes, filename: str, source_operation: str) -> ArtifactInfo:
        """Persist ``content`` under a fresh unique name derived from ``filename``."""

    @abc.abstractmethod
    def get(self, name: str) -> Artifact:
        """Return an artifact. Raises NotFoundError when absent."""

    @abc.abstractmethod
    def stat(self, name: str) -> ArtifactInfo:
        """Return artifact metadata without its content."""

    @abc.abstractmethod
    def delete(self, name: str) -> None:
        """Remove an artifact; missing artifacts are ignored."""

    @abc.abstractmethod
    def sweep(self, max_age: Optional[float] = None, now: Optional[float] = None) -> SweepResult:
        """Delete artifacts older than ``max_age`` seconds."""

    def start(self) -> None:
        """Prepare the store; runs an initial sweep."""
        self.sweep()


class LocalArtifactStore(ArtifactStore):
    """Artifacts as files under ``<storage_base_path>/artifacts``.

    Metadata lives in a JSON sidecar under ``meta/``. Writes go to a temp
    file first and are renamed into place, so readers never see a partial
    artifact.
    """

    def __init__(
        self,
        base_path: Optional[str] = None,
        *,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.root = Path(base_path or settings.storage_base_path) / "artifacts"
        self.meta_dir = self.root / "meta"
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.artifact_ttl_seconds
        self._clock = clock

    def _ensure_dirs(self) -> None:
        try:
            self.meta_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"Artifact directory unavailable: {exc}") from exc

    def _path(self, name: str) -> Path:
        return self.root / name

    def _meta_path(self, name: str) -> Path:
        return self.meta_dir / f"{name}.json"

    def start(self) -> None:
        self._ensure_dirs()
        logger.info("artifact_store_ready", path=str(self.root), ttl_seconds=self.ttl_seconds)
        super().start()

    # -----------------------------------------------------------------------
    # Write
    # -----------------------------------------------------------------------

    def put(self, content: bytes, filename: str, source_operation: str) -> ArtifactInfo:
        extension = extension_of(filename)
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError(f"Cannot store artifact of type '{extension}'")
        name = f"{stem_of(filename)[:60]}-{uuid.uuid4().hex[:12]}.{extension}"
        info = ArtifactInfo(
            name=name, size=len(content), created_at=self._clock(), source_operation=source_operation
        )

        self._ensure_dirs()
        path = self._path(name)
        try:
            _atomic_write(path, content)
            _atomic_write(self._meta_path(name), json.dumps(asdict(info)).encode("utf-8"))
            os.utime(path, (info.created_at, info.created_at))
        except OSError as exc:
            path.unlink(missing_ok=True)
            self._meta_path(name).unlink(missing_ok=True)
            logger.error("artifact_write_failed", name=name, error=str(exc))
            raise StorageUnavailableError(
                f"Could not write artifact {name}: {exc}",
                user_message="Storage is temporarily unavailable",
            ) from exc

        logger.info("artifact_saved", name=name, size_bytes=info.size, operation=source_operation)
        return info

    def delete(self, name: str) -> None:
        validate_name(name)
        self._path(name).unlink(missing_ok=True)
        self._meta_path(name).unlink(missing_ok=True)

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    def stat(self, name: str) -> ArtifactInfo:
        validate_name(name)
        path = self._path(name)
        try:
            st = path.stat()
        except FileNotFoundError:
            raise NotFoundError(f"Artifact not found: {name}", user_message="File not found") from None
        except OSError as exc:
            raise StorageUnavailableError(f"Could not stat artifact {name}: {exc}") from exc

        meta = self._read_meta(name)
        return ArtifactInfo(
            name=name,
            size=st.st_size,
            created_at=meta.get("created_at", st.st_mtime),
            source_operation=meta.get("source_operation", "unknown"),
        )

    def get(self, name: str) -> Artifact:
        info = self.stat(name)
        try:
            content = self._path(name).read_bytes()
        except FileNotFoundError:
            # removed by a sweep between stat and read
            raise NotFoundError(f"Artifact not found: {name}", user_message="File not found") from None
        except OSError as exc:
            raise StorageUnavailableError(f"Could not read artifact {name}: {exc}") from exc
        return Artifact(info=info, content=content)

    def _read_meta(self, name: str) -> dict:
        try:
            return json.loads(self._meta_path(name).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("artifact_meta_unreadable", name=name, error=str(exc))
            return {}

    # -----------------------------------------------------------------------
    # Expiry
    # -----------------------------------------------------------------------

    def sweep(self, max_age: Optional[float] = None, now: Optional[float] = None) -> SweepResult:
        max_age = self.ttl_seconds if max_age is None else max_age
        now = self._clock() if now is None else now
        result = SweepResult()
        if not self.root.exists():
            return result

        for path in self.root.iterdir():
            if not path.is_file():
                continue
            result.scanned += 1
            try:
                created_at = self._read_meta(path.name).get("created_at", path.stat().st_mtime)
                if now - created_at <= max_age:
                    continue
                size = path.stat().st_size
                path.unlink()
                self._meta_path(path.name).unlink(missing_ok=True)
            except FileNotFoundError:
                continue
            except OSError as exc:
                result.errors += 1
                logger.warning("artifact_sweep_failed", name=path.name, error=str(exc))
                continue
            result.removed += 1
            result.bytes_freed += size

        self._sweep_orphan_meta()
        logger.info(
            "sweep_completed",
            scanned=result.scanned,
            removed=result.removed,
            bytes_freed=result.bytes_freed,
            errors=result.errors,
        )
        return result

    def _sweep_orphan_meta(self) -> None:
        if not self.meta_dir.exists():
            return
        for meta in self.meta_dir.glob("*.json"):
            if not self._path(meta.name[: -len(".json")]).exists():
                try:
                    meta.unlink()
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    logger.warning("artifact_meta_sweep_failed", name=meta.name, error=str(exc))


def _atomic_write(path: Path, data: bytes) -> None:
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)

import mimetypes
import time
import uuid
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class RawInput(BaseModel):
    """User-supplied file: bytes plus the declared name and media type."""

    data: bytes = Field(repr=False)
    name: str
    media_type: str = ""

    model_config = {"frozen": True}

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path, media_type: Optional[str] = None) -> "RawInput":
        """Read a file from disk, guessing its media type from the name.

        The guess is empty when the platform does not know the extension
        (HEIC on most systems), mirroring what browsers report.
        """
        path = Path(path)
        if media_type is None:
            media_type = mimetypes.guess_type(path.name)[0] or ""
        return cls(data=path.read_bytes(), name=path.name, media_type=media_type)


class VariantSpec(BaseModel):
    """Target width and encoder quality for one output variant."""

    width: int = Field(gt=0)
    quality: float = Field(gt=0, le=1)

    model_config = {"frozen": True}


class VariantOverride(BaseModel):
    """Per-field override of a VariantSpec (unset fields keep defaults)."""

    width: Optional[int] = Field(default=None, gt=0)
    quality: Optional[float] = Field(default=None, gt=0, le=1)

    def apply(self, spec: VariantSpec) -> VariantSpec:
        return spec.model_copy(update=self.model_dump(exclude_none=True))


class OptimizationOverrides(BaseModel):
    """Optional overrides for the desktop and mobile variants."""

    desktop: Optional[VariantOverride] = None
    mobile: Optional[VariantOverride] = None


class VariantResult(BaseModel):
    """One resized and re-encoded output."""

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    size: int = Field(ge=0)
    quality: float
    media_type: str = "image/webp"
    encoded_bytes: bytes = Field(default=b"", repr=False)

    model_config = {"frozen": True}


class OriginalInfo(BaseModel):
    """Source image stats included in the report."""

    width: int
    height: int
    size: int
    name: str
    media_type: str

    model_config = {"frozen": True}


class OptimizationReport(BaseModel):
    """Both variants plus source stats and wall-clock duration."""

    desktop: VariantResult
    mobile: VariantResult
    original: OriginalInfo
    elapsed_ms: float = Field(ge=0)

    model_config = {"frozen": True}


def _new_entry_id() -> str:
    return uuid.uuid4().hex


def _now_ms() -> int:
    return int(time.time() * 1000)


class LogEntry(BaseModel):
    """A completed conversion recorded in the history log.

    Serialized with camelCase keys (``fileName``, ``durationMs`` ...) so
    persisted history stays readable by the web client.
    """

    id: str = Field(default_factory=_new_entry_id)
    file_name: str = Field(alias="fileName")
    file_size: int = Field(alias="fileSize")
    elapsed_ms: float = Field(alias="durationMs")
    desktop_size: int = Field(alias="desktopSize")
    mobile_size: int = Field(alias="mobileSize")
    timestamp: int = Field(default_factory=_now_ms)

    model_config = {"frozen": True, "populate_by_name": True}

    @classmethod
    def from_report(cls, raw: RawInput, report: OptimizationReport) -> "LogEntry":
        return cls(
            file_name=raw.name,
            file_size=raw.size,
            elapsed_ms=report.elapsed_ms,
            desktop_size=report.desktop.size,
            mobile_size=report.mobile.size,
        )

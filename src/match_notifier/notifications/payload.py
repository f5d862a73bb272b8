"""Notification payloads handed to the webhook dispatcher.

An artifact is either a screenshot on disk (capture path) or an
in-memory image pushed by an external caller (direct ingest path).
"""

from dataclasses import dataclass
from datetime import date
from pathlib import Path


@dataclass(frozen=True)
class FileArtifact:
    """Screenshot stored on the local filesystem, streamed on upload."""

    path: Path

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class BufferArtifact:
    """Image bytes held in memory, attached directly on upload."""

    data: bytes
    filename: str

    def __post_init__(self) -> None:
        if not self.data:
            raise ValueError("buffer artifact must not be empty")
        if not self.filename:
            raise ValueError("buffer artifact needs a filename")


Artifact = FileArtifact | BufferArtifact


@dataclass(frozen=True)
class NotificationPayload:
    """An artifact plus the caption posted alongside it."""

    artifact: Artifact
    caption: str

    def __post_init__(self) -> None:
        if not self.caption or not self.caption.strip():
            raise ValueError("caption must be a non-empty string")

    @classmethod
    def from_file(cls, path: Path, caption: str) -> "NotificationPayload":
        return cls(artifact=FileArtifact(path=Path(path)), caption=caption)

    @classmethod
    def from_buffer(cls, data: bytes, filename: str, caption: str) -> "NotificationPayload":
        return cls(artifact=BufferArtifact(data=data, filename=filename), caption=caption)


def dated_caption(suffix: str, today: date | None = None) -> str:
    """Build the 'YYYY-MM-DD <suffix>' caption used for report screenshots."""
    today = today or date.today()
    return f"{today.isoformat()} {suffix}"

"""Screenshot directory management and retention.

Captured files are named screenshot-<epoch-ms>.png. Names are strictly
increasing within a process, so two captures in the same millisecond
never collide.
"""

import time
from pathlib import Path

import aiofiles.os
import structlog

from match_notifier.config import RetentionMode

logger = structlog.get_logger(__name__)

PREFIX = "screenshot-"
SUFFIX = ".png"


class ScreenshotStore:
    """Owns the screenshot directory: naming, listing and cleanup.

    Retention modes:
    - keep_all: never delete anything
    - keep_latest: keep the newest ``retention_count`` screenshots
    - delete_after_dispatch: delete a screenshot once the webhook accepted it
    """

    def __init__(
        self,
        base_path: Path,
        retention_mode: RetentionMode = RetentionMode.KEEP_LATEST,
        retention_count: int = 20,
    ) -> None:
        """Initialize the store.

        Args:
            base_path: Directory screenshots are written to. Created if missing.
            retention_mode: Cleanup policy applied after each job
            retention_count: Files kept under keep_latest
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.retention_mode = RetentionMode(retention_mode)
        self.retention_count = retention_count
        self._last_stamp = 0

    def next_path(self) -> Path:
        """Return a fresh, unused screenshot path."""
        stamp = time.time_ns() // 1_000_000
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return self.base_path / f"{PREFIX}{stamp}{SUFFIX}"

    def list_screenshots(self) -> list[Path]:
        """List stored screenshots, oldest first."""
        files = [
            p
            for p in self.base_path.glob(f"{PREFIX}*{SUFFIX}")
            if p.is_file()
        ]
        return sorted(files, key=_stamp_of)

    async def delete(self, filepath: Path) -> bool:
        """Delete a screenshot.

        Returns:
            True if file was deleted, False if it did not exist.
        """
        try:
            await aiofiles.os.remove(filepath)
            return True
        except FileNotFoundError:
            return False

    async def apply_retention(
        self, latest: Path | None = None, dispatched: bool = False
    ) -> list[Path]:
        """Apply the configured retention policy.

        Args:
            latest: Screenshot produced by the job that just finished
            dispatched: Whether the webhook accepted ``latest``

        Returns:
            Paths that were removed.
        """
        removed: list[Path] = []

        if self.retention_mode is RetentionMode.DELETE_AFTER_DISPATCH:
            if latest is not None and dispatched and await self.delete(latest):
                removed.append(latest)
        elif self.retention_mode is RetentionMode.KEEP_LATEST:
            stale = self.list_screenshots()[: -self.retention_count]
            for path in stale:
                if await self.delete(path):
                    removed.append(path)

        if removed:
            logger.info(
                "screenshots_removed",
                count=len(removed),
                mode=self.retention_mode.value,
            )
        return removed

    def is_writable(self) -> bool:
        """Check that the screenshot directory exists and accepts writes."""
        if not self.base_path.is_dir():
            return False
        marker = self.base_path / ".write_check"
        try:
            marker.touch()
            marker.unlink()
        except OSError:
            return False
        return True

    def get_storage_stats(self) -> dict:
        """Get storage statistics.

        Returns:
            Dictionary with:
            - total_files: Number of stored screenshots
            - total_size_mb: Total size in megabytes
        """
        files = self.list_screenshots()
        total_size = sum(p.stat().st_size for p in files)
        return {
            "total_files": len(files),
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }


def _stamp_of(path: Path) -> int:
    try:
        return int(path.name[len(PREFIX) : -len(SUFFIX)])
    except ValueError:
        return 0

"""Persistence of the last-scan watermark."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, TypedDict

logger = logging.getLogger(__name__)


class WatermarkStore(Protocol):
    """
    Protocol for the component that persists the scan watermark.

    The watermark is an ISO-8601 timestamp: every document modified before it
    has been handed to the processor successfully.
    """

    def get_last_scan_timestamp(self) -> Optional[str]:
        """Return the stored watermark, or None if no scan has completed."""
        ...

    def set_last_scan_timestamp(self, timestamp: str) -> None:
        """Persist a new watermark."""
        ...


class ScanState(TypedDict, total=False):
    """Serialized state file format."""

    last_scan: Optional[str]
    updated_at: str


class JsonWatermarkStore:
    """
    Keep the watermark in a small JSON state file.

    Writes go to a temporary file that is then renamed over the state file,
    so a crash never leaves a half-written watermark behind. An unreadable
    state file is treated as "no watermark", which makes the next scan a
    full one.

    Example:
        store = JsonWatermarkStore(Path(".metasync/state.json"))
        store.set_last_scan_timestamp("2024-05-01T12:00:00+00:00")
        store.get_last_scan_timestamp()  # "2024-05-01T12:00:00+00:00"
    """

    def __init__(self, state_file: Path) -> None:
        """
        Initialize the store.

        Args:
            state_file: Path of the JSON state file (parent is created on write)
        """
        self.state_file = Path(state_file)

    def _load_state(self) -> ScanState:
        if self.state_file.exists():
            try:
                with open(self.state_file, encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    state: ScanState = data  # type: ignore[assignment]
                    return state
                logger.warning(f"Ignoring scan state in {self.state_file}: expected a JSON object")
            except (OSError, ValueError) as e:
                logger.warning(f"Could not load scan state from {self.state_file}: {e}")
        return {}

    def get_last_scan_timestamp(self) -> Optional[str]:
        return self._load_state().get("last_scan")

    def set_last_scan_timestamp(self, timestamp: str) -> None:
        state: ScanState = {
            "last_scan": timestamp,
            "updated_at": datetime.now().astimezone().isoformat(),
        }
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.state_file.with_suffix(self.state_file.suffix + ".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)
        os.replace(tmp_file, self.state_file)
        logger.debug(f"Saved scan watermark {timestamp} to {self.state_file}")

    def clear(self) -> None:
        """Forget the watermark so the next scan is a full one."""
        if self.state_file.exists():
            self.state_file.unlink()
        logger.info("Cleared scan watermark")


class MemoryWatermarkStore:
    """In-process watermark store, for tests and one-off runs."""

    def __init__(self, timestamp: Optional[str] = None) -> None:
        self._timestamp = timestamp

    def get_last_scan_timestamp(self) -> Optional[str]:
        return self._timestamp

    def set_last_scan_timestamp(self, timestamp: str) -> None:
        self._timestamp = timestamp

    def clear(self) -> None:
        self._timestamp = None

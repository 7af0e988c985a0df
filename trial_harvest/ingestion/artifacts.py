"""
Artifact Storage Module
=======================

Writes the per-event audit files: the final JSON record and, optionally,
the raw event page it was scraped from.

Directory structure:
    {base_path}/{event_number}.json
    {base_path}/{event_number}.html
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from trial_harvest.core.schema import EventResult

# Event numbers are used as file names
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class ArtifactMetadata:
    """Where an event's artifacts were written."""

    event_number: str
    json_path: str
    html_path: str | None
    size_bytes: int
    created_at: datetime


class ArtifactStorage:
    """Local filesystem storage for per-event output artifacts."""

    def __init__(self, base_path: str | Path, save_raw_html: bool = True) -> None:
        """
        Initialize artifact storage.

        Args:
            base_path: Directory the artifacts are written to
            save_raw_html: Also keep the raw event page next to the JSON
        """
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.save_raw_html = save_raw_html

    def _path_for(self, event_number: str, extension: str) -> Path:
        safe = _UNSAFE_CHARS.sub("_", event_number) or "unknown"
        return self.base_path / f"{safe}.{extension}"

    def _write_atomic(self, path: Path, data: str) -> int:
        """Write to a temp file, then rename it into place."""
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        encoded = data.encode("utf-8")
        with open(tmp_path, "wb") as f:
            f.write(encoded)
        os.replace(tmp_path, path)
        return len(encoded)

    def save_event(self, result: EventResult, raw_html: str | None = None) -> ArtifactMetadata:
        """
        Save the JSON record for an event, and its raw page if enabled.

        Returns:
            ArtifactMetadata with the written paths
        """
        event_number = result.event.event_number
        json_path = self._path_for(event_number, "json")
        size = self._write_atomic(json_path, result.model_dump_json(indent=2))

        html_path: Path | None = None
        if self.save_raw_html and raw_html:
            html_path = self._path_for(event_number, "html")
            size += self._write_atomic(html_path, raw_html)

        return ArtifactMetadata(
            event_number=event_number,
            json_path=str(json_path),
            html_path=str(html_path) if html_path else None,
            size_bytes=size,
            created_at=datetime.now(),
        )

    def load_event(self, event_number: str) -> EventResult | None:
        """Read back a saved event record, or None if there is none."""
        json_path = self._path_for(event_number, "json")
        if not json_path.exists():
            return None
        return EventResult.model_validate_json(json_path.read_text(encoding="utf-8"))

    def list_events(self) -> list[str]:
        """Event numbers (file stems) with a saved JSON record."""
        return sorted(p.stem for p in self.base_path.glob("*.json"))

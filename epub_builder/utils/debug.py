"""Helpers to persist a publication snapshot for debugging."""
from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any

from epub_builder.model.resources import PublicationSnapshot


class DebugDumper:
    """Writes the frozen publication onto disk for inspection."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def dump(self, snapshot: PublicationSnapshot) -> Path:
        """Persist the snapshot as JSON; binary payloads are summarised by size."""
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / "publication.json"
        target.write_text(json.dumps(self._serialize(snapshot), indent=2, ensure_ascii=False), encoding="utf-8")
        return target

    def _serialize(self, value: Any) -> Any:
        if is_dataclass(value):
            return {f.name: self._serialize(getattr(value, f.name)) for f in fields(value)}
        if isinstance(value, (bytes, bytearray)):
            return {"bytes": len(value)}
        if isinstance(value, dict):
            return {k: self._serialize(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._serialize(v) for v in value]
        return value

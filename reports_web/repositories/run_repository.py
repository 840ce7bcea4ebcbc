from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class RunFileRepository:
    """
    Repository pattern: locates artifacts that older runs wrote to disk
    instead of storing their bytes with the run.
    """
    artifacts_base: Path

    def resolve(self, file_path: Optional[str]) -> Optional[Path]:
        raw = (file_path or "").strip()
        if not raw:
            return None

        base = self.artifacts_base.resolve()
        candidate = Path(raw)
        full = (candidate if candidate.is_absolute() else base / candidate).resolve()
        if base not in full.parents:
            return None
        if not full.exists() or not full.is_file():
            return None
        return full

    def read_artifact(self, file_path: Optional[str]) -> Optional[bytes]:
        full = self.resolve(file_path)
        if full is None:
            return None
        return full.read_bytes()

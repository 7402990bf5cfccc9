"""
Write fetched artifacts and run summaries to an output directory.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .base import OutputRecord
from .utils import ensure_directory

logger = logging.getLogger(__name__)


class OutputOrganizer:
    def __init__(self, base_dir="./ComfyOutputs"):
        self.base_dir = Path(base_dir)
        self.setup_structure()

    def setup_structure(self):
        """Create the artifacts/ and logs/ folders"""
        for folder in ("artifacts", "logs"):
            ensure_directory(self.base_dir / folder)

    def _target_path(self, job_dir: Path, record: OutputRecord) -> Path:
        stem = Path(record.filename).stem or "artifact"
        candidate = job_dir / f"{stem}.{record.file_extension}"
        counter = 1
        while candidate.exists():
            candidate = job_dir / f"{stem}_{counter}.{record.file_extension}"
            counter += 1
        return candidate

    def save_records(self, job_id: str, records: Iterable[OutputRecord]) -> List[Path]:
        """Write every successful record's bytes under artifacts/<job_id>/."""
        job_dir = ensure_directory(self.base_dir / "artifacts" / job_id)
        saved: List[Path] = []
        for record in records:
            if not record.ok:
                continue
            path = self._target_path(job_dir, record)
            path.write_bytes(record.content)
            saved.append(path)
            logger.info("Saved %s (%s) to %s", record.filename, record.file_size, path)
        return saved

    def log_session(self, session_data: Dict[str, Any]) -> Path:
        """Write a timestamped JSON summary of a run"""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        log_file = self.base_dir / "logs" / f"session_{timestamp}.json"

        with open(log_file, "w") as f:
            json.dump(session_data, f, indent=2, default=str)

        logger.info("Session logged to: %s", log_file)
        return log_file

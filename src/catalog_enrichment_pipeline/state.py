"""Durable run-state persistence for crash-safe resumption."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from .ingest import write_json
from .schemas import RunState

logger = logging.getLogger("catalog_enrichment_pipeline.state")


class RunStateStore:
    """Stores the latest RunState as one JSON document, replaced atomically."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RunState | None:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            return RunState.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            raise ValueError(f"Run state at {self._path} is unreadable: {exc}") from exc

    def save(self, state: RunState) -> None:
        write_json(self._path, state)
        logger.debug("run_id=%s offset=%d status=%s saved", state.run_id, state.offset, state.status.value)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)

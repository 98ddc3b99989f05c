"""Generation history: newest-first list of finished images, capped and deduplicated by id."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Literal

import pydantic
from pydantic import BaseModel, Field

from looklab.jobs.models import utcnow

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "generation-history.v1.json"
DEFAULT_MAX_ITEMS = 200

HistoryTool = Literal["lookbook", "fabric-design", "try-on", "nano-banana"]


class HistoryItem(BaseModel):
    id: str
    tool: HistoryTool
    image_url: str
    prompt: str
    model: str
    created_at: datetime = Field(default_factory=utcnow)


class GenerationHistory:
    """File-backed history list."""

    def __init__(self, path: Path, max_items: int = DEFAULT_MAX_ITEMS):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._max_items = max_items

    def list(self) -> list[HistoryItem]:
        if not self._path.exists():
            return []
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable history file %s: %s", self._path, e)
            return []
        if not isinstance(raw, list):
            return []
        items = []
        for entry in raw:
            try:
                items.append(HistoryItem.model_validate(entry))
            except pydantic.ValidationError:
                continue
        return items

    def add(self, item: HistoryItem) -> None:
        existing = [x for x in self.list() if x.id != item.id]
        self._write([item, *existing])

    def remove(self, item_id: str) -> bool:
        items = self.list()
        kept = [x for x in items if x.id != item_id]
        if len(kept) == len(items):
            return False
        self._write(kept)
        return True

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)

    def _write(self, items: list[HistoryItem]) -> None:
        data = [x.model_dump(mode="json") for x in items[: self._max_items]]
        tmp = self._path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, self._path)


def get_history(settings) -> GenerationHistory:
    return GenerationHistory(settings.state_dir / HISTORY_FILENAME, settings.looklab_max_history_items)

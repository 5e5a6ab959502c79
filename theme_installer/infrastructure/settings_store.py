"""JSON file implementation of the SettingsStore port."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from ..application.domain import SettingsStore


class JsonFileSettingsStore(SettingsStore):
    """
    Keeps settings in a single JSON document.

    Writes go to a '.part' file that is renamed over the original, so a
    crash never leaves a half-written settings file behind.
    """

    def __init__(self, path: Path):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _dump(self, values: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        part_path = self.path.with_suffix(self.path.suffix + ".part")
        try:
            with open(part_path, "w", encoding="utf-8") as f:
                json.dump(values, f, indent=2, sort_keys=True)
            os.replace(part_path, self.path)
        finally:
            part_path.unlink(missing_ok=True)

    async def get(self, key: str) -> Any:
        values = await asyncio.to_thread(self._load)
        return values.get(key)

    async def edit(self, key: str, value: Any) -> None:
        async with self._lock:
            values = await asyncio.to_thread(self._load)
            values[key] = value
            await asyncio.to_thread(self._dump, values)
        self.logger.info(f"Setting '{key}' updated")

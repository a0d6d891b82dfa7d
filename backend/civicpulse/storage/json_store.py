"""
Local filesystem storage for whole-collection JSON snapshots.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

import aiofiles
import aiofiles.os

from civicpulse.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class JsonFileStorage:
    """
    Blob store for one collection, kept as a single JSON document.

    ``save_all`` overwrites the whole document: the data is written to a
    sibling temp file which then replaces the target, so readers never see a
    partially written file.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"<JsonFileStorage(path={self.path})>"

    async def load_all(self) -> Optional[Any]:
        """
        Read the stored document.

        Returns:
            Parsed JSON, or None when nothing has been stored yet

        Raises:
            StorageError: If the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            return None
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except OSError as e:
            raise StorageError(f"Failed to read {self.path.name}: {e}", path=str(self.path), operation="load") from e

        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt data file {self.path.name}: {e}", path=str(self.path), operation="load") from e

    async def save_all(self, records: Any) -> None:
        """
        Replace the stored document with ``records``.

        Raises:
            StorageError: If the snapshot cannot be serialized or written
        """
        try:
            payload = json.dumps(records, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Failed to serialize {self.path.name}: {e}", path=str(self.path), operation="save") from e

        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        try:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write {self.path.name}: {e}", path=str(self.path), operation="save") from e

        logger.debug(f"Wrote {len(payload)} bytes to {self.path}")

"""JSON file-based checkpoint storage."""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

from flowchord.storage.interfaces import ICheckpointStore
from flowchord.storage.models import Checkpoint


class JSONFileCheckpointStore(ICheckpointStore):
    """Stores one checkpoint per execution as a JSON file.

    Layout:
        base_dir/
            <execution_id>.json

    Suspended executions survive process restarts; a resume call in a new
    process picks up the file.

    Example:
        >>> store = JSONFileCheckpointStore("./checkpoints")
        >>> await store.save(checkpoint)
        >>> restored = await store.load(checkpoint.execution_id)
    """

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, execution_id: str) -> asyncio.Lock:
        if execution_id not in self._locks:
            self._locks[execution_id] = asyncio.Lock()
        return self._locks[execution_id]

    @staticmethod
    def _validate_id(execution_id: str) -> None:
        """Reject ids that could escape the base directory."""
        if (
            not execution_id
            or ".." in execution_id
            or "/" in execution_id
            or "\\" in execution_id
        ):
            raise ValueError(f"Invalid execution id: {execution_id!r}")

    def _get_path(self, execution_id: str) -> Path:
        self._validate_id(execution_id)
        path = self._base_dir / f"{execution_id}.json"
        if not str(path.resolve()).startswith(str(self._base_dir.resolve())):
            raise ValueError(f"Invalid execution id: {execution_id!r}")
        return path

    def _write_atomic(self, path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def save(self, checkpoint: Checkpoint) -> None:
        path = self._get_path(checkpoint.execution_id)
        payload = checkpoint.model_dump_json(by_alias=True, indent=2)
        async with self._get_lock(checkpoint.execution_id):
            await asyncio.to_thread(self._write_atomic, path, payload)

    async def load(self, execution_id: str) -> Checkpoint | None:
        path = self._get_path(execution_id)
        async with self._get_lock(execution_id):
            if not path.exists():
                return None
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return Checkpoint.model_validate_json(raw)

    async def delete(self, execution_id: str) -> bool:
        path = self._get_path(execution_id)
        async with self._get_lock(execution_id):
            if not path.exists():
                return False
            path.unlink()
        self._locks.pop(execution_id, None)
        return True

    async def list_ids(self) -> list[str]:
        if not self._base_dir.exists():
            return []
        return sorted(p.stem for p in self._base_dir.glob("*.json"))

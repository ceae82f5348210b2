"""On-disk mirror of the last known snapshot of each collection."""

import json
import re
from datetime import UTC, datetime
from pathlib import Path

import structlog

from herdbook.store.backends import Snapshot

logger = structlog.get_logger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class SnapshotCache:
    """JSON snapshots keyed by owner and entity.

    Layout: ``{cache_dir}/{owner_id}/{entity}.json``. A missing or unreadable
    file is reported as no cached snapshot.
    """

    def __init__(self, cache_dir: Path | str):
        self._cache_dir = Path(cache_dir)
        self._logger = logger.bind(component="snapshot_cache")

    def _path(self, owner_id: str, entity: str) -> Path:
        return self._cache_dir / _UNSAFE.sub("_", owner_id) / f"{_UNSAFE.sub('_', entity)}.json"

    def has(self, owner_id: str, entity: str) -> bool:
        return self._path(owner_id, entity).is_file()

    def load(self, owner_id: str, entity: str) -> Snapshot | None:
        path = self._path(owner_id, entity)
        if not path.is_file():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return [(str(doc["id"]), dict(doc["data"])) for doc in payload["documents"]]
        except (OSError, ValueError, KeyError, TypeError) as e:
            self._logger.warning("cache_unreadable", path=str(path), error=str(e))
            return None

    def save(self, owner_id: str, entity: str, snapshot: Snapshot) -> None:
        path = self._path(owner_id, entity)
        payload = {
            "entity": entity,
            "saved_at": datetime.now(UTC).isoformat(),
            "documents": [{"id": doc_id, "data": data} for doc_id, data in snapshot],
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(payload), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            self._logger.warning("cache_write_failed", path=str(path), error=str(e))

    def clear(self, owner_id: str, entity: str) -> None:
        path = self._path(owner_id, entity)
        if path.is_file():
            path.unlink()

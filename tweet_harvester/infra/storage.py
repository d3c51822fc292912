"""File storage for the ingestion hash index and record shards."""

from __future__ import annotations

import json
import os
import re
import shutil
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

import structlog

UNIQUE_INDEX_FILENAME = "unique_tweets.json"
BACKUP_SUFFIX = ".backup"
SHARD_PREFIX = "tweets_"

_SHARD_STAMP = re.compile(rf"^{SHARD_PREFIX}(\d+)\.json$")


def _atomic_write_json(path: Path, payload: Any, indent: int | None = None) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    with tmp_path.open("w", encoding="utf-8") as stream:
        json.dump(payload, stream, ensure_ascii=False, indent=indent)
        stream.flush()
        os.fsync(stream.fileno())
    os.replace(tmp_path, path)


def _shard_sort_key(path: Path) -> tuple[int, str]:
    match = _SHARD_STAMP.match(path.name)
    if match:
        return int(match.group(1)), path.name
    return -1, path.name


class HashIndexStore:
    """Durable set of content hashes kept as one JSON array."""

    def __init__(self, data_dir: Path, logger: structlog.BoundLogger | None = None) -> None:
        self.data_dir = data_dir
        self.path = data_dir / UNIQUE_INDEX_FILENAME
        self.backup_path = data_dir / f"{UNIQUE_INDEX_FILENAME}{BACKUP_SUFFIX}"
        self.logger = logger or structlog.get_logger("tweet_harvester.storage")

    def ensure_directory(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> list[str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self.logger.info("hash_index_missing", path=str(self.path))
            return []
        payload = json.loads(text)
        if not isinstance(payload, list):
            raise ValueError(f"Hash index must contain a JSON array: {self.path}")
        return [str(item) for item in payload]

    def save(self, hashes: Iterable[str]) -> int:
        """Replace the index file, copying the previous one to ``.backup`` first."""

        self.ensure_directory()
        try:
            shutil.copyfile(self.path, self.backup_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.logger.error("hash_index_backup_failed", path=str(self.backup_path), error=str(exc))
        values = list(hashes)
        _atomic_write_json(self.path, values)
        self.logger.info("hash_index_saved", count=len(values))
        return len(values)


class ShardStore:
    """Write-once JSON shards named by ingestion time."""

    def __init__(
        self,
        data_dir: Path,
        clock: Callable[[], float] = time.time,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.data_dir = data_dir
        self._clock = clock
        self.logger = logger or structlog.get_logger("tweet_harvester.storage")

    def write(self, records: list[dict[str, Any]]) -> Path:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        stamp = int(self._clock() * 1000)
        path = self.data_dir / f"{SHARD_PREFIX}{stamp}.json"
        while path.exists():
            stamp += 1
            path = self.data_dir / f"{SHARD_PREFIX}{stamp}.json"
        _atomic_write_json(path, records, indent=2)
        self.logger.info("shard_written", path=str(path), count=len(records))
        return path

    def list_shards(self) -> list[Path]:
        if not self.data_dir.exists():
            return []
        shards = (
            path
            for path in self.data_dir.glob("*.json")
            if path.is_file() and path.name != UNIQUE_INDEX_FILENAME
        )
        return sorted(shards, key=_shard_sort_key)

    def iter_shards(self) -> Iterator[tuple[Path, list[Any]]]:
        """Yield parsed shards, skipping files that cannot be read."""

        for path in self.list_shards():
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                self.logger.error("shard_read_failed", path=str(path), error=str(exc))
                continue
            if not isinstance(payload, list):
                self.logger.warning("shard_not_a_list", path=str(path))
                continue
            yield path, payload


__all__ = [
    "BACKUP_SUFFIX",
    "HashIndexStore",
    "SHARD_PREFIX",
    "ShardStore",
    "UNIQUE_INDEX_FILENAME",
]

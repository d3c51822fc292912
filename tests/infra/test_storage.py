from __future__ import annotations

import json
from pathlib import Path

import pytest

from tweet_harvester.infra import HashIndexStore, ShardStore
from tweet_harvester.infra.storage import UNIQUE_INDEX_FILENAME


def test_hash_index_missing_file_is_empty(tmp_path: Path) -> None:
    store = HashIndexStore(tmp_path / "tweets")
    assert store.load() == []


def test_hash_index_save_keeps_backup_of_previous_version(tmp_path: Path) -> None:
    store = HashIndexStore(tmp_path)
    assert store.save(["a", "b"]) == 2
    assert not store.backup_path.exists()

    store.save(["a", "b", "c"])

    assert store.load() == ["a", "b", "c"]
    assert json.loads(store.backup_path.read_text(encoding="utf-8")) == ["a", "b"]
    assert not list(tmp_path.glob(".*.tmp"))


def test_hash_index_rejects_non_list_payload(tmp_path: Path) -> None:
    (tmp_path / UNIQUE_INDEX_FILENAME).write_text('{"hashes": []}', encoding="utf-8")
    with pytest.raises(ValueError):
        HashIndexStore(tmp_path).load()


def test_shard_names_follow_clock_and_never_collide(tmp_path: Path) -> None:
    shards = ShardStore(tmp_path, clock=lambda: 1714564800.5)
    first = shards.write([{"tweetId": "1"}])
    second = shards.write([{"tweetId": "2"}])

    assert first.name == "tweets_1714564800500.json"
    assert second.name == "tweets_1714564800501.json"
    assert json.loads(first.read_text(encoding="utf-8")) == [{"tweetId": "1"}]


def test_list_shards_sorts_by_stamp_and_skips_index(tmp_path: Path) -> None:
    for name in ("tweets_1000.json", "tweets_999.json", UNIQUE_INDEX_FILENAME):
        (tmp_path / name).write_text("[]", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    names = [path.name for path in ShardStore(tmp_path).list_shards()]
    assert names == ["tweets_999.json", "tweets_1000.json"]


def test_iter_shards_skips_unreadable_files(tmp_path: Path) -> None:
    (tmp_path / "tweets_1.json").write_text('[{"tweetId": "1"}]', encoding="utf-8")
    (tmp_path / "tweets_2.json").write_text("{broken", encoding="utf-8")
    (tmp_path / "tweets_3.json").write_text('{"tweetId": "3"}', encoding="utf-8")

    parsed = list(ShardStore(tmp_path).iter_shards())
    assert [(path.name, payload) for path, payload in parsed] == [
        ("tweets_1.json", [{"tweetId": "1"}])
    ]


def test_missing_data_dir_has_no_shards(tmp_path: Path) -> None:
    assert ShardStore(tmp_path / "absent").list_shards() == []

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from tweet_harvester.config import ServerConfig
from tweet_harvester.server import IngestionService, create_app
from tweet_harvester.server.api import origin_allowed, origin_regex


@pytest.fixture
def client(tmp_path: Path):
    config = ServerConfig(data_dir=tmp_path / "tweets", default_page_limit=2)
    app = create_app(config, base_dir=tmp_path)
    with TestClient(app) as test_client:
        yield test_client


def test_store_data_accepts_record_arrays(client: TestClient, make_wire_record) -> None:
    response = client.post("/store-data", json=[make_wire_record("1"), make_wire_record("2")])

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Tweets stored successfully"
    assert body["count"] == 2
    assert body["filename"].startswith("tweets_")

    again = client.post("/store-data", json=[make_wire_record("1")])
    assert again.json() == {"message": "No new unique tweets", "count": 0}


@pytest.mark.parametrize(
    ("payload", "received"),
    [
        ({"users_tweets": []}, "object"),
        ("text", "string"),
        (12, "number"),
        (True, "boolean"),
    ],
)
def test_store_data_rejects_non_arrays(client: TestClient, payload, received) -> None:
    response = client.post("/store-data", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid data format", "received": received}


def test_store_data_rejects_invalid_json(client: TestClient) -> None:
    response = client.post(
        "/store-data",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid data format"


def test_get_tweets_pages_newest_first(client: TestClient, make_wire_record) -> None:
    records = [
        make_wire_record(str(n), timestamp=f"2024-05-0{n}T00:00:00.000Z") for n in range(1, 4)
    ]
    client.post("/store-data", json=records)

    first = client.get("/get-tweets").json()
    assert (first["total"], first["page"], first["limit"]) == (3, 1, 2)
    assert [tweet["tweetId"] for tweet in first["tweets"]] == ["3", "2"]

    second = client.get("/get-tweets", params={"page": "2", "limit": "2"}).json()
    assert [tweet["tweetId"] for tweet in second["tweets"]] == ["1"]

    lenient = client.get("/get-tweets", params={"page": "abc", "limit": "-1"}).json()
    assert (lenient["page"], lenient["limit"]) == (1, 2)


def test_health_reports_queue_depth(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok", "queued": 0}


def test_unknown_origin_is_rejected(client: TestClient) -> None:
    response = client.get("/get-tweets", headers={"Origin": "https://evil.example"})
    assert response.status_code == 403
    assert response.json() == {"error": "Not allowed by CORS"}


def test_allowed_origins_receive_cors_headers(client: TestClient) -> None:
    response = client.get("/health", headers={"Origin": "chrome-extension://abcdef"})
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "chrome-extension://abcdef"

    preflight = client.options(
        "/store-data",
        headers={
            "Origin": "https://x.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    assert preflight.status_code == 200
    assert preflight.headers["access-control-allow-origin"] == "https://x.com"


def test_corrupted_index_returns_500(tmp_path: Path, client: TestClient, make_wire_record) -> None:
    (tmp_path / "tweets" / "unique_tweets.json").write_text("{not json", encoding="utf-8")

    response = client.post("/store-data", json=[make_wire_record("1")])

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal server error"
    assert body["message"].startswith("Expecting property name")
    assert not list((tmp_path / "tweets").glob("tweets_*.json"))


def test_storage_failure_returns_500(tmp_path: Path, make_wire_record) -> None:
    class FailingService(IngestionService):
        def process_batch(self, records):
            raise OSError("disk full")

    service = FailingService(tmp_path / "tweets")
    app = create_app(ServerConfig(), service=service)
    with TestClient(app) as client:
        response = client.post("/store-data", json=[make_wire_record("1")])

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "message": "disk full"}


def test_unhandled_loop_error_requests_shutdown(tmp_path: Path) -> None:
    app = create_app(ServerConfig(data_dir=tmp_path / "tweets"), base_dir=tmp_path)
    exits: list[int] = []
    app.state.shutdown_hook = lambda: exits.append(1)

    @app.get("/boom")
    async def boom():
        asyncio.get_running_loop().call_soon(lambda: 1 / 0)
        return {"scheduled": True}

    with TestClient(app) as client:
        assert client.get("/boom").status_code == 200
        assert client.get("/health").status_code == 200

    assert app.state.fatal is True
    assert exits == [1]


def test_origin_matching() -> None:
    patterns = ["chrome-extension://*", "https://x.com"]
    assert origin_allowed("chrome-extension://abc", patterns) is True
    assert origin_allowed("https://x.com", patterns) is True
    assert origin_allowed("https://x.com.evil", patterns) is False
    assert origin_regex([]) == "^$"

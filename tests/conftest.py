"""Pytest configuration and shared fixtures for BTN client tests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pytest

from btnclient.btn.client import BtnClient, BtnResponse
from btnclient.models import BtnConfig
from btnclient.utils.backoff import ExponentialBackoff


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("asyncio", "marks tests as async (deselect with '-m \"not asyncio\"')"),
        ("slow", "marks tests as slow (deselect with '-m \"not slow\"')"),
        ("unit", "marks tests as unit tests"),
        ("btn", "marks tests as BTN exchange tests"),
        ("config", "marks tests as configuration tests"),
        ("cli", "marks tests as CLI tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_btn_env(monkeypatch):
    """Keep BTN_* variables from the developer environment out of tests."""
    import os

    for name in list(os.environ):
        if name.startswith("BTN_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        if logger_name.startswith("btnclient"):
            logger.propagate = True
            logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Downloader fakes
# ---------------------------------------------------------------------------


class FakePeerFlag(Enum):
    DOWNLOADING = "D"
    UPLOADING = "U"


@dataclass
class FakeAddress:
    ip: str
    port: int


@dataclass
class FakePeer:
    address: FakeAddress
    peer_id: str | None = "-qB4500-abcdefghijkl"
    client_name: str | None = "qBittorrent 4.5.0"
    flags: Any = FakePeerFlag.DOWNLOADING
    progress: float = 0.5
    downloaded: int = 1024
    download_speed: int = 64
    uploaded: int = 2048
    uploaded_speed: int = 128


@dataclass
class FakeTorrent:
    hash: str
    size: int = 1_000_000
    progress: float = 0.25


@dataclass
class FakeDownloader:
    name: str
    downloader_name: str = ""
    torrents: dict[str, list[FakePeer]] = field(default_factory=dict)
    login_error: Exception | None = None
    broken_torrents: set[str] = field(default_factory=set)
    login_calls: int = 0

    def __post_init__(self):
        if not self.downloader_name:
            self.downloader_name = f"{self.name} (qBittorrent)"

    def login(self) -> None:
        self.login_calls += 1
        if self.login_error is not None:
            raise self.login_error

    def get_torrents(self) -> list[FakeTorrent]:
        return [FakeTorrent(hash=h) for h in self.torrents]

    def get_peers(self, torrent: FakeTorrent) -> list[FakePeer]:
        if torrent.hash in self.broken_torrents:
            msg = f"peer list unavailable for {torrent.hash}"
            raise RuntimeError(msg)
        return list(self.torrents[torrent.hash])


@dataclass
class FakeBanCounter:
    value: int = 0

    def get_peer_ban_counter(self) -> int:
        return self.value


def make_peer(ip: str = "203.0.113.5", port: int = 51413, **kwargs: Any) -> FakePeer:
    return FakePeer(address=FakeAddress(ip=ip, port=port), **kwargs)


@pytest.fixture
def peer_factory():
    """Factory for fake peers."""
    return make_peer


@pytest.fixture
def downloader_factory():
    """Factory for fake downloaders."""
    return FakeDownloader


@pytest.fixture
def ban_counter():
    return FakeBanCounter()


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


def response(status: int, body: bytes | str = b"", url: str = "https://btn.example/") -> BtnResponse:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return BtnResponse(status=status, content=body, url=url)


@pytest.fixture
def make_response():
    """Factory for BtnResponse objects."""
    return response


@pytest.fixture
def btn_config():
    """Server configuration advertising both abilities."""
    return BtnConfig.model_validate(
        {
            "ability": ["rule", "submit", "reconfigure"],
            "abilityRule": {"endpoint": "https://btn.example/rules"},
            "abilitySubmit": {
                "endpoint": "https://btn.example/ping",
                "perBatchSize": 3,
                "batchPeriod": 0,
            },
        }
    )


@pytest.fixture
def btn_client(tmp_path, btn_config):
    """BtnClient with a mocked-out session and no retry delays."""
    from unittest.mock import MagicMock

    client = BtnClient(
        app_id="app-id",
        app_secret="app-secret",
        cache_file=tmp_path / "btn.cache",
        session=MagicMock(),
        backoff=ExponentialBackoff(base_delay=0.0, max_delay=0.0, jitter=0.0, max_retries=2),
    )
    client.config = btn_config
    return client

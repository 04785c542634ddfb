"""Tests for BTN manager orchestration."""

import asyncio
import json
import logging
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from btnclient.btn.manager import (
    JOB_CONFIG_REFRESH,
    JOB_RULE_UPDATE,
    JOB_SUBMIT,
    BtnManager,
)
from btnclient.models import BtnSettings
from btnclient.utils.exceptions import TransportError
from conftest import FakeBanCounter, FakeDownloader, make_peer

CONFIG_URL = "https://btn.example/config"
CONFIG_BODY = json.dumps(
    {
        "ability": ["rule", "submit"],
        "abilityRule": {"endpoint": "https://btn.example/rules"},
        "abilitySubmit": {
            "endpoint": "https://btn.example/ping",
            "perBatchSize": 10,
            "batchPeriod": 0,
        },
    }
)


@pytest.fixture
def settings(tmp_path):
    return BtnSettings(
        enabled=True,
        app_id="app",
        app_secret="secret",
        config_url=CONFIG_URL,
        cache_file=str(tmp_path / "btn.cache"),
        max_retries=0,
    )


@pytest.fixture
def manager(settings):
    downloaders = [FakeDownloader("qb", torrents={"t": [make_peer()]})]
    mgr = BtnManager(settings, downloaders, FakeBanCounter(value=3), session=MagicMock())
    mgr.client.get = AsyncMock()
    mgr.client.post_gzip_json = AsyncMock()
    return mgr


class TestRefreshConfig:
    """Tests for capability refresh."""

    @pytest.mark.asyncio
    async def test_loads_config(self, manager, make_response):
        manager.client.get.return_value = make_response(200, CONFIG_BODY)

        assert await manager.refresh_config() is True

        manager.client.get.assert_awaited_once_with(CONFIG_URL)
        assert manager.btn_config.has_ability("rule")
        assert manager.btn_config.ability_submit.per_batch_size == 10

    @pytest.mark.asyncio
    async def test_failure_keeps_previous(self, manager, make_response, caplog):
        manager.client.get.return_value = make_response(200, CONFIG_BODY)
        await manager.refresh_config()
        previous = manager.btn_config

        manager.client.get.return_value = make_response(502, "bad gateway")
        with caplog.at_level(logging.WARNING, logger="btnclient"):
            assert await manager.refresh_config() is False
        assert manager.btn_config is previous

        manager.client.get.side_effect = TransportError("dns failure")
        assert await manager.refresh_config() is False
        assert manager.btn_config is previous
        assert any("502" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            "not json",
            '{"ability": ["rule"]}',
            '{"ability": ["submit"], "abilitySubmit": {"endpoint": "x", "perBatchSize": 0}}',
        ],
    )
    async def test_invalid_config_rejected(self, manager, make_response, body):
        manager.client.get.return_value = make_response(200, body)

        assert await manager.refresh_config() is False
        assert manager.btn_config is None

    @pytest.mark.asyncio
    async def test_unknown_abilities_ignored(self, manager, make_response):
        manager.client.get.return_value = make_response(200, '{"ability": ["future-thing"]}')

        assert await manager.refresh_config() is True
        assert not manager.btn_config.has_ability("rule")
        assert await manager.update_rule_now() is False
        assert await manager.submit_now() is None


class TestLifecycle:
    """Tests for manager start/stop."""

    @pytest.mark.asyncio
    async def test_start_schedules_jobs_and_fetches_rules(self, manager, make_response):
        manager.client.get.side_effect = [
            make_response(200, CONFIG_BODY),
            make_response(200, '{"version": "4"}'),
        ]

        await manager.start()
        try:
            assert manager.is_running
            assert set(manager.scheduler.jobs) == {JOB_CONFIG_REFRESH, JOB_RULE_UPDATE, JOB_SUBMIT}
            for _ in range(20):
                if manager.rule is not None:
                    break
                await asyncio.sleep(0.01)
            assert manager.rule.version == "4"
            urls = [c.args[0] for c in manager.client.get.await_args_list]
            assert urls == [CONFIG_URL, "https://btn.example/rules?rev=0"]
            manager.client.post_gzip_json.assert_not_awaited()
        finally:
            await manager.stop()

        assert not manager.is_running
        assert not manager.scheduler.is_running()

    @pytest.mark.asyncio
    async def test_start_uses_cached_revision(self, manager, make_response):
        manager.cache_file.write_text('{"version": "11"}', encoding="utf-8")
        manager.client.get.side_effect = [
            make_response(200, CONFIG_BODY),
            make_response(204),
        ]

        await manager.start()
        try:
            for _ in range(20):
                if manager.client.get.await_count >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await manager.stop()

        assert manager.client.get.await_args_list[1].args[0] == "https://btn.example/rules?rev=11"
        assert manager.rule.version == "11"

    @pytest.mark.asyncio
    async def test_start_publishes_cached_rule_on_loop(self, manager, make_response):
        manager.cache_file.write_text('{"version": "11"}', encoding="utf-8")
        manager.client.get.side_effect = [make_response(500), make_response(500)]
        seen = []
        manager.add_rule_listener(lambda rule: seen.append(threading.get_ident()))

        await manager.start()
        await manager.stop()

        assert seen == [threading.get_ident()]

    @pytest.mark.asyncio
    async def test_start_twice_warns(self, manager, make_response, caplog):
        manager.client.get.return_value = make_response(204)

        await manager.start()
        try:
            with caplog.at_level(logging.WARNING, logger="btnclient"):
                await manager.start()
            assert any("already running" in r.getMessage() for r in caplog.records)
        finally:
            await manager.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_inflight_submission(self, manager, make_response):
        manager.client.get.return_value = make_response(200, CONFIG_BODY)
        await manager.refresh_config()
        gate = asyncio.Event()

        async def slow_post(endpoint, body):
            await gate.wait()
            return make_response(200)

        manager.client.post_gzip_json.side_effect = slow_post
        task = manager.scheduler.create(manager.submit_now())
        for _ in range(50):
            if manager.client.post_gzip_json.await_count:
                break
            await asyncio.sleep(0.01)

        await manager.stop()

        assert task.cancelled()
        assert manager.submitter.last_report.aborted


class TestManualTriggers:
    """Tests for on-demand cycles."""

    @pytest.mark.asyncio
    async def test_submit_now(self, manager, make_response):
        manager.client.get.return_value = make_response(200, CONFIG_BODY)
        manager.client.post_gzip_json.return_value = make_response(200)
        await manager.refresh_config()

        report = await manager.submit_now()

        assert report.pings == 1
        assert report.sent == 1
        body = manager.client.post_gzip_json.await_args.args[1]
        assert body["bans"] == 3
        assert body["downloader"] == "qb (qBittorrent)"

    @pytest.mark.asyncio
    async def test_submit_disabled_by_settings(self, settings, make_response):
        settings = settings.model_copy(update={"submit": False})
        manager = BtnManager(settings, [FakeDownloader("qb")], session=MagicMock())
        manager.client.get = AsyncMock(return_value=make_response(200, CONFIG_BODY))
        manager.client.post_gzip_json = AsyncMock()
        await manager.refresh_config()

        assert await manager.submit_now() is None
        manager.client.post_gzip_json.assert_not_awaited()

    def test_accessors(self, manager, settings):
        assert manager.cache_file == settings.cache_path
        assert manager.ban_counter.get_peer_ban_counter() == 3
        assert manager.http_session is manager.client.session
        assert manager.btn_config is None
        assert manager.rule is None

    @pytest.mark.asyncio
    async def test_rule_listener_forwarded(self, manager, make_response):
        received = []
        manager.add_rule_listener(received.append)
        manager.client.get.side_effect = [
            make_response(200, CONFIG_BODY),
            make_response(200, '{"version": "5"}'),
        ]

        await manager.refresh_config()
        await manager.update_rule_now()

        assert [r.version for r in received] == ["5"]

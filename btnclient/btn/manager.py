"""BTN orchestration: capability refresh and the rule/submit timers."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from btnclient.btn.client import BtnClient
from btnclient.btn.pings import DownloaderSource, PingBuilder
from btnclient.btn.rules import RuleFetcher, RuleListener
from btnclient.btn.submitter import PingSubmitter, SubmitReport
from btnclient.models import BtnConfig, BtnRule
from btnclient.utils.backoff import ExponentialBackoff
from btnclient.utils.exceptions import BtnHttpError, TransportError
from btnclient.utils.scheduler import PeriodicJob, Scheduler

if TYPE_CHECKING:  # pragma: no cover
    from pathlib import Path

    import aiohttp

    from btnclient.btn.downloader import BanCounter
    from btnclient.models import BtnSettings

logger = logging.getLogger(__name__)

JOB_CONFIG_REFRESH = "btn-config-refresh"
JOB_RULE_UPDATE = "btn-rule-update"
JOB_SUBMIT = "btn-submit"


class BtnManager:
    """Owns the BTN client and drives its periodic work."""

    def __init__(
        self,
        settings: BtnSettings,
        downloaders: DownloaderSource = (),
        ban_counter: BanCounter | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        """Initialize BTN manager.

        Args:
            settings: BTN section of the configuration
            downloaders: Downloaders to report, or a callable returning them
            ban_counter: Source of the cumulative ban count
            session: Shared aiohttp session; the client creates one if omitted

        """
        self.settings = settings
        self.client = BtnClient(
            app_id=settings.app_id,
            app_secret=settings.app_secret,
            cache_file=settings.cache_path,
            session=session,
            backoff=ExponentialBackoff(
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
                max_retries=settings.max_retries,
            ),
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
        )
        self.ping_builder = PingBuilder(downloaders, ban_counter)
        self.rule_fetcher = RuleFetcher(self.client)
        self.submitter = PingSubmitter(self.client, self.ping_builder, enabled=settings.submit)
        self.scheduler = Scheduler()
        self._config_lock = asyncio.Lock()
        self._started = False

    @property
    def http_session(self) -> aiohttp.ClientSession | None:
        return self.client.session

    @property
    def btn_config(self) -> BtnConfig | None:
        return self.client.config

    @property
    def rule(self) -> BtnRule | None:
        return self.client.rule

    @property
    def cache_file(self) -> Path:
        return self.client.cache_file

    @property
    def ban_counter(self) -> BanCounter | None:
        return self.ping_builder.ban_counter

    @property
    def is_running(self) -> bool:
        return self._started

    def add_rule_listener(self, listener: RuleListener) -> None:
        self.rule_fetcher.add_listener(listener)

    async def refresh_config(self) -> bool:
        """Fetch the server capabilities from the bootstrap URL.

        The previous configuration stays in effect on any failure.
        """
        async with self._config_lock:
            try:
                resp = await self.client.get(self.settings.config_url)
            except TransportError as e:
                logger.warning("BTN request failed: %s", e)
                return False
            try:
                resp.raise_for_status()
            except BtnHttpError as e:
                logger.warning("BTN request failed: %s", e)
                return False
            try:
                config = BtnConfig.model_validate(resp.json())
            except ValueError as e:
                logger.warning("BTN returned an invalid configuration: %s", e)
                return False

            self.client.config = config
            logger.info(
                "BTN configuration loaded, abilities: %s",
                ", ".join(sorted(config.ability)) or "none",
            )
            return True

    async def update_rule_now(self) -> bool:
        return await self.rule_fetcher.update_rule()

    async def submit_now(self) -> SubmitReport | None:
        return await self.submitter.submit()

    async def start(self) -> None:
        """Load the cached rule, fetch capabilities and start the timers."""
        if self._started:
            logger.warning("BTN manager already running")
            return
        await self.client.start()
        await self.rule_fetcher.load_cache()
        await self.refresh_config()

        settings = self.settings
        self.scheduler.schedule(
            PeriodicJob(
                JOB_CONFIG_REFRESH,
                self.refresh_config,
                settings.config_refresh_interval,
                initial_delay=settings.config_refresh_interval,
            )
        )
        self.scheduler.schedule(
            PeriodicJob(JOB_RULE_UPDATE, self.rule_fetcher.update_rule, settings.rule_update_interval)
        )
        self.scheduler.schedule(
            PeriodicJob(
                JOB_SUBMIT,
                self.submitter.submit,
                settings.submit_interval,
                initial_delay=settings.submit_interval,
            )
        )
        self._started = True
        logger.info("BTN manager started")

    async def stop(self, timeout: float = 10.0) -> None:
        """Cancel the timers and any in-flight cycle, then close the session."""
        await self.scheduler.cancel_and_wait(timeout=timeout)
        await self.client.close()
        if self._started:
            self._started = False
            logger.info("BTN manager stopped")

    async def __aenter__(self) -> BtnManager:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

"""Revision-checked rule fetching with an on-disk cache."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from btnclient.models import ABILITY_RULE, BtnRule
from btnclient.utils.exceptions import BtnHttpError, RuleParseError, TransportError
from btnclient.utils.urls import append_query

if TYPE_CHECKING:  # pragma: no cover
    from btnclient.btn.client import BtnClient

logger = logging.getLogger(__name__)

INITIAL_REVISION = "0"

RuleListener = Callable[[BtnRule], None]


def parse_rule(content: bytes | str) -> BtnRule:
    """Parse a rule document.

    Raises:
        RuleParseError: if the content is not a JSON object

    """
    try:
        data = json.loads(content)
    except ValueError as e:
        msg = f"Rule document is not valid JSON: {e}"
        raise RuleParseError(msg) from e
    if not isinstance(data, dict):
        msg = f"Rule document must be a JSON object, got {type(data).__name__}"
        raise RuleParseError(msg)
    try:
        return BtnRule.model_validate(data)
    except ValueError as e:
        msg = f"Invalid rule document: {e}"
        raise RuleParseError(msg) from e


def write_cache_file(path: Path, content: bytes) -> None:
    """Replace ``path`` with ``content`` via a temporary sibling file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    try:
        tmp_path.write_bytes(content)
        os.replace(tmp_path, path)
    except OSError:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise


class RuleFetcher:
    """Keeps ``BtnClient.rule`` in sync with the server's rule document."""

    def __init__(self, client: BtnClient):
        """Initialize rule fetcher.

        Args:
            client: BTN client carrying the config, current rule and cache path

        """
        self.client = client
        self._lock = asyncio.Lock()
        self._listeners: list[RuleListener] = []

    def add_listener(self, listener: RuleListener) -> None:
        """Register a callback invoked with every newly published rule."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: RuleListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    @property
    def revision(self) -> str:
        rule = self.client.rule
        if rule is None or rule.version is None:
            return INITIAL_REVISION
        return rule.version

    def read_cache(self) -> BtnRule | None:
        """Parse the cache file, or None if it is missing or unreadable."""
        path = self.client.cache_file
        if not path.exists():
            return None
        try:
            return parse_rule(path.read_bytes())
        except (OSError, RuleParseError) as e:
            logger.warning("Ignoring unreadable BTN rule cache %s: %s", path, e)
            return None

    async def load_cache(self) -> BtnRule | None:
        """Load the cached rule so the first fetch can present its revision.

        The file is read in a worker thread; listeners are called on the
        event loop. The cache never replaces a rule already held in memory.
        """
        rule = await asyncio.to_thread(self.read_cache)
        if rule is None:
            return None
        if self.client.rule is None:
            self.client.rule = rule
            logger.info("Loaded cached BTN rules, version %s", rule.version)
            self._publish(rule)
        return rule

    async def update_rule(self) -> bool:
        """Fetch the rule document if the server has a newer revision.

        Returns:
            True if a new rule was published

        """
        if self._lock.locked():
            logger.debug("Rule update already in progress, skipping")
            return False
        async with self._lock:
            return await self._update_rule()

    async def _update_rule(self) -> bool:
        config = self.client.config
        if config is None or not config.has_ability(ABILITY_RULE):
            return False

        url = append_query(config.ability_rule.endpoint, {"rev": self.revision})
        logger.debug("Fetching BTN rules from %s", url)
        try:
            resp = await self.client.get(url)
        except TransportError as e:
            logger.warning("BTN request failed: %s", e)
            return False

        if resp.status == 204:
            logger.debug("BTN rules are up to date (version %s)", self.revision)
            return False
        try:
            resp.raise_for_status()
        except BtnHttpError as e:
            logger.warning("BTN request failed: %s", e)
            return False

        try:
            rule = parse_rule(resp.content)
        except RuleParseError as e:
            logger.warning("BTN returned a malformed rule document: %s", e)
            return False

        self.client.rule = rule
        try:
            await asyncio.to_thread(write_cache_file, self.client.cache_file, resp.content)
        except OSError as e:
            logger.debug("Could not write BTN rule cache %s: %s", self.client.cache_file, e)

        logger.info("BTN rules updated to version %s", rule.version)
        self._publish(rule)
        return True

    def _publish(self, rule: BtnRule) -> None:
        for listener in list(self._listeners):
            try:
                listener(rule)
            except Exception:
                logger.exception("BTN rule listener %r failed", listener)

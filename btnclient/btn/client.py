"""HTTP client for the BTN server.

Holds the application credentials, the shared aiohttp session and the
current server configuration and rule. Every request carries the
identifying headers; transport faults are retried with bounded
exponential backoff while HTTP statuses are handed back untouched.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiohttp

from btnclient.models import BtnConfig, BtnRule
from btnclient.utils.backoff import ExponentialBackoff
from btnclient.utils.exceptions import BtnHttpError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "btn-client/0.1.0"


@dataclass
class BtnResponse:
    """Fully read HTTP response."""

    status: int
    content: bytes
    url: str

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return self.status == 200

    def json(self) -> Any:
        return json.loads(self.content)

    def raise_for_status(self) -> None:
        """Raise BtnHttpError unless the server answered 200."""
        if not self.ok:
            raise BtnHttpError(self.status, self.text, self.url)


class BtnClient:
    """Authenticated HTTP access to the BTN server."""

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        cache_file: str | Path,
        session: aiohttp.ClientSession | None = None,
        backoff: ExponentialBackoff | None = None,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        """Initialize BTN client.

        Args:
            app_id: Application id issued by the BTN server
            app_secret: Application secret issued by the BTN server
            cache_file: Path of the rule cache file
            session: Shared aiohttp session; one is created on start() if omitted
            backoff: Retry policy for transport faults
            timeout: Total timeout of a single attempt in seconds
            user_agent: User-Agent header value

        """
        self.app_id = app_id
        self.app_secret = app_secret
        self.cache_file = Path(cache_file).expanduser()
        self.session = session
        self.backoff = backoff or ExponentialBackoff()
        self.timeout = timeout
        self.user_agent = user_agent
        self._owns_session = False

        # replaced wholesale, never mutated in place
        self.config: BtnConfig | None = None
        self.rule: BtnRule | None = None

    async def start(self) -> None:
        """Create the HTTP session if none was supplied."""
        if self.session is not None:
            return
        timeout = aiohttp.ClientTimeout(total=self.timeout, connect=self.timeout)
        connector = aiohttp.TCPConnector(
            limit=10,
            limit_per_host=4,
            ttl_dns_cache=300,
            use_dns_cache=True,
        )
        self.session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        self._owns_session = True
        logger.debug("BTN HTTP session started")

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None
            self._owns_session = False
            logger.debug("BTN HTTP session closed")

    @property
    def headers(self) -> dict[str, str]:
        """Identifying headers attached to every request."""
        return {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
            "BTN-AppID": self.app_id,
            "BTN-AppSecret": self.app_secret,
            "X-BTN-AppID": self.app_id,
            "X-BTN-AppSecret": self.app_secret,
            "Authentication": f"Bearer {self.app_id}@{self.app_secret}",
        }

    async def get(self, url: str) -> BtnResponse:
        """Retryable GET."""
        return await self.retryable_send("GET", url)

    async def post_gzip_json(self, url: str, obj: Any) -> BtnResponse:
        """POST ``obj`` as gzip-compressed JSON."""
        payload = json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
        body = gzip.compress(payload.encode("utf-8"))
        return await self.retryable_send(
            "POST",
            url,
            data=body,
            headers={
                "Content-Type": "application/json",
                "Content-Encoding": "gzip",
            },
        )

    async def retryable_send(
        self,
        method: str,
        url: str,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> BtnResponse:
        """Send a request, retrying transport faults only.

        Any HTTP status, including 5xx, is returned to the caller as-is.

        Raises:
            TransportError: when every attempt failed at the transport level

        """
        if self.session is None:
            msg = "HTTP session not initialized"
            raise RuntimeError(msg)

        request_headers = self.headers
        if headers:
            request_headers.update(headers)

        attempt = 0
        while True:
            try:
                async with self.session.request(
                    method, url, data=data, headers=request_headers
                ) as resp:
                    content = await resp.read()
                    return BtnResponse(status=resp.status, content=content, url=url)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if not self.backoff.can_retry(attempt):
                    msg = f"{method} {url} failed after {attempt + 1} attempt(s): {e!r}"
                    raise TransportError(msg, {"url": url}) from e
                delay = self.backoff.next_delay(attempt)
                logger.debug(
                    "%s %s failed (%r), retrying in %.2fs", method, url, e, delay
                )
                attempt += 1
                await asyncio.sleep(delay)

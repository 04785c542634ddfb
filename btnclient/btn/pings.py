"""Ping building: walks downloaders → torrents → peers into ClientPings."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import TYPE_CHECKING, Callable, Iterable, Union

from btnclient.btn.projection import project_peer, project_torrent
from btnclient.models import ClientPing, PeerConnection

if TYPE_CHECKING:  # pragma: no cover
    from btnclient.btn.downloader import BanCounter, Downloader

logger = logging.getLogger(__name__)

DownloaderSource = Union[Iterable["Downloader"], Callable[[], Iterable["Downloader"]]]


class PingBuilder:
    """Builds one ClientPing per reachable downloader.

    The builder keeps the ban counter reading of the previous cycle. Builds
    are serialized, including a build whose awaiting task was cancelled
    while the worker thread kept running.
    """

    def __init__(
        self,
        downloaders: DownloaderSource,
        ban_counter: BanCounter | None = None,
    ):
        """Initialize ping builder.

        Args:
            downloaders: Downloaders to report, or a callable returning them
            ban_counter: Source of the cumulative ban count

        """
        self._downloaders = downloaders
        self.ban_counter = ban_counter
        self.last_recorded_bans = 0
        self._build_lock = threading.Lock()

    def _iter_downloaders(self) -> list[Downloader]:
        source = self._downloaders
        if callable(source):
            source = source()
        return list(source)

    def _ban_delta(self) -> int:
        """Bans since the previous cycle."""
        if self.ban_counter is None:
            return 0
        now = int(self.ban_counter.get_peer_ban_counter())
        delta = now - self.last_recorded_bans
        self.last_recorded_bans = now
        if delta < 0:
            # counter went backwards (engine restarted); report nothing
            logger.debug("Ban counter decreased to %d, resetting baseline", now)
            return 0
        return delta

    def _collect_connections(self, downloader: Downloader) -> list[PeerConnection]:
        connections: list[PeerConnection] = []
        for torrent in downloader.get_torrents():
            try:
                torrent_info = project_torrent(torrent)
                peers = downloader.get_peers(torrent)
            except Exception as e:
                logger.debug(
                    "Skipping torrent on downloader %s: %s", downloader.name, e
                )
                continue
            for peer in peers:
                try:
                    peer_info = project_peer(peer)
                except ValueError as e:
                    logger.warning(
                        "Skipping peer on downloader %s: %s", downloader.name, e
                    )
                    continue
                connections.append(PeerConnection(torrent=torrent_info, peer=peer_info))
        return connections

    def build_pings(self, submit_id: str | None = None) -> list[ClientPing]:
        """Snapshot every downloader into pings sharing one submit id.

        A downloader whose login or torrent listing fails is skipped for this
        cycle; a failing torrent only drops that torrent's peers and a peer
        that cannot be projected only drops itself.
        """
        with self._build_lock:
            return self._build_pings(submit_id)

    def _build_pings(self, submit_id: str | None) -> list[ClientPing]:
        bans = self._ban_delta()
        submit_id = submit_id or str(uuid.uuid4())
        pings: list[ClientPing] = []

        for downloader in self._iter_downloaders():
            try:
                downloader.login()
                connections = self._collect_connections(downloader)
                pings.append(
                    ClientPing(
                        submit_id=submit_id,
                        populate_at=int(time.time() * 1000),
                        downloader=downloader.downloader_name,
                        peers=connections,
                        bans=bans,
                    )
                )
            except Exception as e:
                logger.warning(
                    "Failed to collect peers from downloader %s: %s",
                    downloader.name,
                    e,
                )

        return pings

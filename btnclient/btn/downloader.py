"""Interfaces of the collaborators the BTN client reads from.

Downloader drivers and the ban counter live outside this package; these
protocols describe the narrow surface the client relies on. Driver calls
are synchronous and may block on the driver's own network I/O.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, Sequence, Union, runtime_checkable


@runtime_checkable
class PeerAddressLike(Protocol):
    """Address of a connected peer."""

    ip: str
    port: int


@runtime_checkable
class Peer(Protocol):
    """Peer as reported by a downloader driver."""

    address: PeerAddressLike
    peer_id: str | None
    client_name: str | None
    flags: Union[Enum, str, None]
    progress: float
    downloaded: int
    download_speed: int
    uploaded: int
    uploaded_speed: int


@runtime_checkable
class Torrent(Protocol):
    """Torrent as reported by a downloader driver."""

    hash: str
    size: int
    progress: float


@runtime_checkable
class Downloader(Protocol):
    """A managed remote BitTorrent client."""

    @property
    def name(self) -> str: ...

    @property
    def downloader_name(self) -> str: ...

    def login(self) -> None:
        """Ensure an authenticated session; raise on failure."""
        ...

    def get_torrents(self) -> Sequence[Torrent]: ...

    def get_peers(self, torrent: Torrent) -> Sequence[Peer]: ...


@runtime_checkable
class BanCounter(Protocol):
    """Source of the cumulative, monotonically non-decreasing ban count."""

    def get_peer_ban_counter(self) -> int: ...

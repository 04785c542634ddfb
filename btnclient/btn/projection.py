"""Projection of live downloader objects onto the ping wire model."""

from __future__ import annotations

import hashlib
import zlib
from enum import Enum
from typing import TYPE_CHECKING

from btnclient.models import PeerAddress, PeerInfo, TorrentInfo

if TYPE_CHECKING:  # pragma: no cover
    from btnclient.btn.downloader import Peer, Torrent


def torrent_salt(infohash: str) -> str:
    """CRC32 of the infohash as 8 hex digits, least significant byte first."""
    crc = zlib.crc32(infohash.encode("utf-8")) & 0xFFFFFFFF
    return crc.to_bytes(4, "little").hex()


def salted_torrent_hash(infohash: str) -> str:
    """Pseudonymize an infohash.

    The salt is derived from the infohash itself, so every installation maps
    the same torrent to the same digest while the server never learns the
    real infohash.
    """
    salt = torrent_salt(infohash)
    return hashlib.sha256((infohash + salt).encode("utf-8")).hexdigest()


def project_torrent(torrent: Torrent) -> TorrentInfo:
    return TorrentInfo(
        hash=salted_torrent_hash(torrent.hash),
        size=torrent.size,
        progress=torrent.progress,
    )


def _render_flags(flags: object) -> str | None:
    if flags is None:
        return None
    if isinstance(flags, Enum):
        return str(flags.value)
    return str(flags)


def project_peer(peer: Peer) -> PeerInfo:
    """Copy a peer's address, identity and counters verbatim."""
    return PeerInfo(
        address=PeerAddress(ip=peer.address.ip, port=peer.address.port),
        client_name=peer.client_name,
        peer_id=peer.peer_id,
        flag=_render_flags(peer.flags),
        progress=peer.progress,
        downloaded=peer.downloaded,
        rt_download_speed=peer.download_speed,
        uploaded=peer.uploaded,
        rt_upload_speed=peer.uploaded_speed,
    )

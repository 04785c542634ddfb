"""BTN (Ban Threat Network) exchange: rule fetching and peer submission."""

from __future__ import annotations

from btnclient.btn.client import BtnClient, BtnResponse
from btnclient.btn.manager import BtnManager
from btnclient.btn.pings import PingBuilder
from btnclient.btn.projection import project_peer, project_torrent, salted_torrent_hash
from btnclient.btn.rules import RuleFetcher
from btnclient.btn.submitter import PingSubmitter, SubmitReport, SubmitState

__all__ = [
    "BtnClient",
    "BtnManager",
    "BtnResponse",
    "PingBuilder",
    "PingSubmitter",
    "RuleFetcher",
    "SubmitReport",
    "SubmitState",
    "project_peer",
    "project_torrent",
    "salted_torrent_hash",
]

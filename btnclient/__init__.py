"""btn-client - Ban Threat Network client core for peer-banning helpers."""

from __future__ import annotations

__version__ = "0.1.0"

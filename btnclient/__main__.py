"""Entry point for ``python -m btnclient``."""

from __future__ import annotations

from btnclient.cli.main import main

if __name__ == "__main__":
    main()

"""Command line interface (``esg-analytics`` / ``python -m esg_analytics.cli``)."""

from __future__ import annotations


def main(argv: list[str] | None = None) -> int:
    # __main__ は -m 実行時に二重 import されないよう遅延 import
    from .__main__ import main as _main

    return _main(argv)


__all__ = ["main"]

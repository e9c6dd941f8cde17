"""Module entrypoint for running bookpress as ``python -m bookpress``."""

from __future__ import annotations

from bookpress.cli import main


if __name__ == "__main__":
    main()

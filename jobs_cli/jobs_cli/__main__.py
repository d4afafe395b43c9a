"""Entry point for `python -m jobs_cli` and the `jobs` console script."""

from __future__ import annotations

from jobs_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()

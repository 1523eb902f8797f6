"""Module entrypoint for ``python -m slo_reconciler``."""

from __future__ import annotations

from slo_reconciler.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())

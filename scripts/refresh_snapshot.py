#!/usr/bin/env python3
"""Fetch the full app list once and write the catalog snapshot.

Lets a deployment ship a warm snapshot so the service can serve search
without waiting on the upstream at cold start.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from app.clients.steam import SteamClient
from app.core.config import settings
from app.services.catalog import CatalogSource, CatalogStore


async def run(out: str, source: CatalogSource | None = None) -> int:
    client = source or SteamClient()
    store = CatalogStore(client, out)
    try:
        ok = await store.refresh()
    finally:
        if isinstance(client, SteamClient):
            await client.close()
    if not ok:
        print("Failed to fetch the app list; snapshot left untouched", file=sys.stderr)
        return 1
    print(f"Wrote {len(store.current())} games to {out}")
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    p.add_argument("--out", default=settings.catalog_snapshot_path, help="Snapshot file path")
    args = p.parse_args(argv)
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s - %(levelname)s - %(message)s")
    return asyncio.run(run(args.out))


if __name__ == "__main__":
    sys.exit(main())

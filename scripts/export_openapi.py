#!/usr/bin/env python3
"""Write the service's OpenAPI document for client generation and review."""
from __future__ import annotations

import argparse
import json
from pathlib import Path

from app.main import create_app


def build_schema() -> dict:
    # a fresh app: no lifespan runs, so nothing touches the catalog or upstreams
    return create_app().openapi()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    p.add_argument("--out", default="docs/openapi.json", help="Output file path")
    args = p.parse_args(argv)

    schema = build_schema()
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(schema, indent=2, sort_keys=True, ensure_ascii=False) + "\n", encoding="utf-8")
    print(f"Wrote {len(schema.get('paths', {}))} paths to {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

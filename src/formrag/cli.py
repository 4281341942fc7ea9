"""Command line entry point for serving the API and ingesting customers."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Sequence

from formrag.config import get_settings
from formrag.errors import FormRagError


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("formrag.api.app:create_app", factory=True, host=args.host, port=args.port)
    return 0


async def _ingest(customer_id: str, force_reindex: bool) -> dict:
    from formrag.api.app import build_dependencies

    deps = build_dependencies(get_settings())
    try:
        result = await deps.ingestor.ingest(customer_id, force_reindex=force_reindex)
    finally:
        await deps.aclose()
    return result.to_dict()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="formrag", description="FormRAG service utilities")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=3000)

    ingest = commands.add_parser("ingest", help="Index one customer's data")
    ingest.add_argument("customer_id")
    ingest.add_argument("--force", action="store_true", help="Delete existing chunks before re-indexing")

    args = parser.parse_args(argv)
    if args.command == "serve":
        return _serve(args)
    try:
        payload = asyncio.run(_ingest(args.customer_id, args.force))
    except FormRagError as exc:
        print(f"Ingestion failed: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

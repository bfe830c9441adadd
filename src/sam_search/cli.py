from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from .config import AppConfig, config_path, load_config
from .errors import SearchError
from .search import SearchService

_FILTER_FLAGS = {
    "q": "q",
    "start_date": "startDate",
    "end_date": "endDate",
    "naics_code": "naicsCode",
    "state": "state",
    "agency": "agency",
    "type": "type",
    "set_aside": "setAside",
    "active": "active",
    "limit": "limit",
    "offset": "offset",
    "entity_name": "entityName",
    "contract_vehicle": "contractVehicle",
    "classification_code": "classificationCode",
    "funding_source": "fundingSource",
    "response_deadline_from": "responseDeadlineFrom",
    "response_deadline_to": "responseDeadlineTo",
    "estimated_value_min": "estimatedValueMin",
    "estimated_value_max": "estimatedValueMax",
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="sam-search", description="SAM.gov opportunity search")
    parser.add_argument("--config", help="Path to config.toml")
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Run a single search and print the results")
    for dest, param in _FILTER_FLAGS.items():
        search.add_argument(f"--{dest.replace('_', '-')}", dest=dest, help=f"{param} filter")
    search.add_argument("--has-attachments", action="store_true")
    search.add_argument("--semantic", action="store_true", help="Rerank by semantic similarity")
    search.add_argument("--provider", help="Embedding provider (openai, huggingface)")
    search.add_argument("--json", action="store_true", help="Print the full response payload")

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    args = parser.parse_args(argv)
    config = load_config(config_path(args.config))
    configure_logging(config.log_level)

    if args.command == "serve":
        return _serve(config, args.host, args.port)
    return _search(config, args)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _search(config: AppConfig, args: argparse.Namespace) -> int:
    raw = {
        param: getattr(args, dest)
        for dest, param in _FILTER_FLAGS.items()
        if getattr(args, dest) is not None
    }
    if args.has_attachments:
        raw["hasAttachments"] = "true"

    service = SearchService(config)
    try:
        page = asyncio.run(
            service.search(
                raw,
                config.sam.api_key,
                client_id="cli",
                semantic_query=args.q if args.semantic else None,
                provider=args.provider,
                embedding_api_key=config.embedding.api_key,
            )
        )
    except SearchError as exc:
        print(f"Search failed: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(page.to_dict(), indent=2))
    else:
        for opp in page.opportunities:
            score = f" score {opp.relevance_score:.3f}" if args.semantic else ""
            print(f"- {opp.title} ({opp.agency or ''}) due {opp.response_deadline or ''}{score}")

    print(
        "SAM search complete: "
        f"returned={len(page.opportunities)} "
        f"total={page.total_records} "
        f"limit={page.limit} "
        f"offset={page.offset}",
        file=sys.stderr,
    )
    return 0


def _serve(config: AppConfig, host: str | None, port: int | None) -> int:
    import uvicorn

    from .api import create_app

    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
SQLVector Assistant CLI
=======================

Command-line interface for the assistant.

Usage:
    sqlvector-assistant [chat]
    sqlvector-assistant ask "<question>"
    sqlvector-assistant check [--json]
"""

import asyncio
import argparse
import json
import sys

from pydantic import ValidationError

from .config import load_config
from .exceptions import ConfigurationMissingError
from .llm_backends import get_backend_for_config, list_backends
from .log_utils import RED, RESET, configure_logging, log_info
from .loop import InteractionLoop
from .models import EmbeddingSource
from .retriever import ContextRetriever


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sqlvector-assistant",
        description="AdventureWorks product assistant backed by SQL Server vector search"
    )

    parser.add_argument("--config", default=None, help="Path to a YAML or JSON config file")
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    parser.add_argument("--model", default=None, help="Generation model")
    parser.add_argument("--base-url", default=None, help="Generation service base URL")
    parser.add_argument("--backend", default=None, choices=list_backends(), help="LLM backend")
    parser.add_argument("--top-k", type=int, default=None, help="Number of chunks to retrieve")
    parser.add_argument(
        "--embedding-source",
        default=None,
        choices=[source.value for source in EmbeddingSource],
        help="Embed the question inside SQL Server or through the generation service"
    )
    parser.add_argument("--log-level", default=None, help="Logging level")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("chat", help="Interactive question loop (default)")

    ask_parser = subparsers.add_parser("ask", help="Answer a single question")
    ask_parser.add_argument("question", help="Question about a product")

    check_parser = subparsers.add_parser("check", help="Check database and generation service")
    check_parser.add_argument("--json", action="store_true", help="Output in JSON format")

    return parser


async def run_check(retriever: ContextRetriever, backend, output_json: bool) -> int:
    """Run check command."""
    db_ok, db_error = await retriever.test_connection()
    health = await backend.health_check()

    if output_json:
        print(json.dumps({
            "database": {"healthy": db_ok, "error": db_error},
            "generation": health,
        }, indent=2))
    else:
        print("\n=== Connectivity ===")
        print(f"SQL Server: {'ok' if db_ok else 'FAILED'}" + (f" ({db_error})" if db_error else ""))
        if health.get("healthy"):
            available = "available" if health.get("model_available") else "NOT PULLED"
            print(f"{backend.name}: ok (model {health['model']} {available})")
        else:
            print(f"{backend.name}: FAILED ({health.get('error')})")

    return 0 if db_ok and health.get("healthy") else 1


async def async_main(args) -> int:
    """Async main function."""
    try:
        config = load_config(
            config_path=args.config,
            env_file=args.env_file,
            llm_model=args.model,
            llm_base_url=args.base_url,
            llm_backend=args.backend,
            top_k=args.top_k,
            embedding_source=args.embedding_source,
            log_level=args.log_level,
        ).validate_required()
    except ConfigurationMissingError as e:
        print(f"{RED}Error: {e}{RESET}", file=sys.stderr)
        return 2
    except (ValidationError, ValueError, FileNotFoundError) as e:
        print(f"{RED}Error: invalid configuration: {e}{RESET}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.log_file)
    log_info("Assistant", f"Using {config.llm_backend} model {config.llm_model} at {config.llm_base_url}")

    backend = get_backend_for_config(config)
    retriever = ContextRetriever(config, embedder=backend)

    if args.command == "check":
        return await run_check(retriever, backend, args.json)

    loop = InteractionLoop(retriever, backend, config)

    if args.command == "ask":
        outcome = await loop.process_turn(args.question)
        return 1 if outcome.failed else 0

    await loop.run()
    return 0


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    try:
        exit_code = asyncio.run(async_main(args))
    except KeyboardInterrupt:
        print("\nGoodbye!")
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main()

# src/main.py - v1
"""CLI entry point: serve, staged, process commands.

Usage:
    pdfdigest serve [--host HOST] [--port PORT]
    pdfdigest staged <conversation_id>
    pdfdigest process <conversation_id> --reply-to <message_id>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pdfdigest.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load(args)
        return args.func(args, settings)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="pdfdigest",
        description=f"pdfdigest v{__version__} - PDF summaries for Feishu chats",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- serve ---
    p_serve = subparsers.add_parser("serve", help="Run the webhook server")
    p_serve.add_argument("--host", default=None, help="Bind address (default: SERVER_HOST)")
    p_serve.add_argument("--port", type=int, default=None, help="Port (default: SERVER_PORT)")
    p_serve.set_defaults(func=_cmd_serve)

    # --- staged ---
    p_staged = subparsers.add_parser(
        "staged", help="List a conversation's staged files in processing order",
    )
    p_staged.add_argument("conversation_id", help="Chat id of the conversation")
    p_staged.set_defaults(func=_cmd_staged)

    # --- process ---
    p_process = subparsers.add_parser(
        "process", help="Run the pipeline for a conversation in the foreground",
    )
    p_process.add_argument("conversation_id", help="Chat id of the conversation")
    p_process.add_argument(
        "--reply-to", required=True,
        help="Message id that progress and result replies are attached to",
    )
    p_process.set_defaults(func=_cmd_process)

    return parser


def _load(args: argparse.Namespace):
    """Load settings and configure logging for the command."""
    from pdfdigest.config.settings import load_settings
    from pdfdigest.logging.logger import setup_logging

    settings = load_settings()
    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    return settings


def _cmd_serve(args: argparse.Namespace, settings) -> int:
    """Run the webhook app under uvicorn."""
    import uvicorn

    from pdfdigest.services import build_services
    from pdfdigest.webhook.app import create_app

    app = create_app(build_services(settings))
    uvicorn.run(
        app,
        host=args.host or settings.server_host,
        port=args.port or settings.server_port,
        log_config=None,
    )
    return 0


def _cmd_staged(args: argparse.Namespace, settings) -> int:
    """Print staged files, oldest first."""
    from pdfdigest.services import build_services

    services = build_services(settings)

    async def _list():
        try:
            return await services.orchestrator.gather(args.conversation_id)
        finally:
            await services.aclose()

    files = asyncio.run(_list())
    if not files:
        print(f"No staged files for {args.conversation_id}")
        return 0

    print(f"\nStaged files for {args.conversation_id}:")
    for staged in files:
        print(f"  {staged.uploaded_at:%Y-%m-%d %H:%M:%S}  {staged.original_name}")
        print(f"      {staged.storage_key}")
    return 0


def _cmd_process(args: argparse.Namespace, settings) -> int:
    """Run one pipeline pass and print the outcome."""
    from pdfdigest.services import build_services

    services = build_services(settings)

    async def _run():
        try:
            return await services.orchestrator.run(args.conversation_id, args.reply_to)
        finally:
            await services.aclose()

    outcome = asyncio.run(_run())
    print(f"\nRun {outcome.status}:")
    print(f"  Conversation: {outcome.conversation_id}")
    print(f"  Files:        {outcome.file_count}")
    if outcome.document_url:
        print(f"  Document:     {outcome.document_url}")
    if outcome.error:
        print(f"  Error:        {outcome.error}")
    return 0 if outcome.ok else 1


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for editagent."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from editagent import __version__
from editagent.config import Config, load_config
from editagent.events import (
    DoneChunk,
    ErrorChunk,
    ReasoningChunk,
    ReasoningEndChunk,
    ReasoningStartChunk,
    TextChunk,
    ToolCallChunk,
    ToolResultChunk,
)
from editagent.logging import get_logger, setup_logging

log = get_logger("cli")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="editagent",
        description="Streaming code-editing assistant with reviewable file changes",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=None,
        help="Increase log verbosity (can be repeated)",
    )

    subparsers = parser.add_subparsers(dest="mode", help="Command")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP and WebSocket server",
    )
    serve_parser.add_argument("--host", help="Bind address (default from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default from config)")

    chat_parser = subparsers.add_parser(
        "chat",
        help="Send one message and stream the answer to stdout",
    )
    chat_parser.add_argument("project", type=Path, help="Project root directory")
    chat_parser.add_argument("message", help="User message")
    chat_parser.add_argument("--model", help="Model id from the catalog or a LiteLLM model string")
    chat_parser.add_argument(
        "--reasoning",
        action="store_true",
        help="Enable extended reasoning where the model supports it",
    )
    chat_parser.add_argument("--conversation", help="Continue a stored conversation")
    chat_parser.add_argument(
        "--resolve",
        choices=["accept", "reject", "dismiss"],
        default="accept",
        help="What to do with pending changes after the turn (default: accept)",
    )

    subparsers.add_parser("models", help="List known models")

    return parser


def _apply_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    if parsed.verbose is not None:
        config.logging.verbose = parsed.verbose
    if getattr(parsed, "model", None):
        config.llm.model = parsed.model
    if getattr(parsed, "reasoning", False):
        config.llm.extended_reasoning = True
    return config


def _print_chunk(chunk: object) -> None:
    out = sys.stdout
    if isinstance(chunk, TextChunk):
        out.write(chunk.content)
    elif isinstance(chunk, ReasoningStartChunk):
        sys.stderr.write("[thinking] ")
    elif isinstance(chunk, ReasoningChunk):
        sys.stderr.write(chunk.content)
    elif isinstance(chunk, ReasoningEndChunk):
        sys.stderr.write("\n")
    elif isinstance(chunk, ToolCallChunk):
        out.write(f"\n> {chunk.name} {json.dumps(chunk.args, ensure_ascii=False)}\n")
    elif isinstance(chunk, ToolResultChunk):
        status = "ok" if chunk.result.get("success") else f"failed: {chunk.result.get('error')}"
        out.write(f"< {chunk.name} {status}\n")
    elif isinstance(chunk, ErrorChunk):
        sys.stderr.write(f"\nerror: {chunk.content}\n")
    out.flush()


async def run_chat(config: Config, parsed: argparse.Namespace) -> int:
    from editagent.session import SessionManager

    manager = SessionManager(config)
    try:
        session = manager.get_session(parsed.project)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    subscription = session.channel.subscribe()
    turn = asyncio.create_task(
        manager.submit_message(
            parsed.project,
            [{"role": "user", "content": parsed.message}],
            parsed.conversation,
        )
    )
    try:
        async for event in subscription:
            _print_chunk(event)
            if isinstance(event, (DoneChunk, ErrorChunk)):
                break
        result = await turn
    except asyncio.CancelledError:
        manager.abort_session()
        result = await turn
    finally:
        subscription.close()

    sys.stdout.write("\n")
    for change in session.tracker.get_pending():
        print(f"{change.type.value}: {change.file_path}")
    if parsed.resolve == "accept":
        resolution = await manager.accept_pending_changes(parsed.project)
    elif parsed.resolve == "reject":
        resolution = await manager.reject_pending_changes(parsed.project)
    else:
        resolution = await manager.dismiss_pending_changes(parsed.project)
    for failure in resolution.failures:
        print(f"error: {failure.file_path}: {failure.error}", file=sys.stderr)

    await manager.close()
    if result.conversation_id:
        print(f"conversation: {result.conversation_id}", file=sys.stderr)
    return 0 if result.success and resolution.success else 1


def run_models(config: Config) -> int:
    from editagent.core.llm import ModelGateway

    for model in ModelGateway(config.llm).list_models():
        marks = " (default)" if model["default"] else ""
        available = "" if model["available"] else " [no API key]"
        print(f"{model['id']:<24} {model['provider']:<10} {model['name']}{marks}{available}")
    return 0


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.mode is None:
        parser.print_help()
        return 1

    project = parsed.project if parsed.mode == "chat" else None
    config = _apply_overrides(load_config(project), parsed)
    setup_logging(config.logging)
    log.debug("Running %s", parsed.mode)

    if parsed.mode == "serve":
        from editagent.server import run_server
        from editagent.session import SessionManager

        try:
            asyncio.run(run_server(config.server, SessionManager(), host=parsed.host, port=parsed.port))
        except KeyboardInterrupt:
            pass
        return 0
    elif parsed.mode == "chat":
        try:
            return asyncio.run(run_chat(config, parsed))
        except KeyboardInterrupt:
            return 130
    elif parsed.mode == "models":
        return run_models(config)
    else:
        parser.print_help()
        return 1


def main() -> None:
    sys.exit(run_cli(sys.argv[1:]))

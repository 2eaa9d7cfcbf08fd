"""
Command-line interface for claw-agent.
"""

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime, timezone
from pathlib import Path

import structlog

from .config import Settings, get_settings

logger = structlog.get_logger()


def configure_logging(level: str) -> None:
    """Route structlog through the stdlib logger at the configured level."""
    logging.basicConfig(level=level.upper(), format="%(message)s", stream=sys.stderr)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="claw-agent",
        description="claw-agent - a streaming, tool-calling AI assistant",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Start an interactive chat")
    chat_parser.add_argument("--new", action="store_true", help="Start a new conversation")

    ask_parser = subparsers.add_parser("ask", help="Send a single message and print the answer")
    ask_parser.add_argument("text", help="Message to send")
    ask_parser.add_argument("--new", action="store_true", help="Start a new conversation")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    memory_parser = subparsers.add_parser("memory", help="Work with long-term memory")
    memory_sub = memory_parser.add_subparsers(dest="memory_command")
    export_parser = memory_sub.add_parser("export", help="Print one day of memories as markdown")
    export_parser.add_argument("--date", type=date.fromisoformat, help="Day to export, YYYY-MM-DD (default: today, UTC)")
    export_parser.add_argument("--output", "-o", type=Path, help="Write to a file instead of stdout")

    subparsers.add_parser("init", help="Initialize claw-agent (create .env, database)")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging(settings.log_level)

    if args.command == "chat":
        asyncio.run(run_chat(settings, args.new))
    elif args.command == "ask":
        sys.exit(asyncio.run(run_ask(settings, args.text, args.new)))
    elif args.command == "config":
        show_config(settings, args.check)
    elif args.command == "init":
        asyncio.run(init_agent(settings))
    elif args.command == "memory" and args.memory_command == "export":
        asyncio.run(export_memory(settings, args.date, args.output))
    else:
        parser.print_help()


async def build_agent(settings: Settings):
    """Create an agent backed by the configured database."""
    from .agent import AgentRuntime
    from .models import init_database
    from .storage import SQLConversationStore, SQLMemoryStore

    session_maker = await init_database(settings.database_url)
    store = SQLConversationStore(session_maker)
    agent = AgentRuntime(
        settings=settings,
        store=store,
        memory_store=SQLMemoryStore(session_maker),
    )
    await agent.initialize()
    return agent, store


def _print_delta(text: str) -> None:
    print(text, end="", flush=True)


async def run_ask(settings: Settings, text: str, new_conversation: bool) -> int:
    """Run one turn and print the streamed answer."""
    from .errors import AgentError

    agent, store = await build_agent(settings)
    try:
        if new_conversation:
            await agent.start_new_conversation()
        agent.add_delta_listener(_print_delta)
        try:
            await agent.send_message(text)
        except AgentError as e:
            print(f"\nError: {e}", file=sys.stderr)
            return 1
        print()
        return 0
    finally:
        await store.close()
        await agent.llm.aclose()


async def run_chat(settings: Settings, new_conversation: bool) -> None:
    """Interactive chat loop."""
    from .errors import AgentError

    agent, store = await build_agent(settings)
    try:
        if new_conversation:
            await agent.start_new_conversation()
        agent.add_delta_listener(_print_delta)

        print(f"claw-agent ({agent.current_conversation.model}). /new starts a conversation, /quit exits.")
        while True:
            try:
                text = await asyncio.to_thread(input, "\n> ")
            except EOFError:
                break

            text = text.strip()
            if not text:
                continue
            if text == "/quit":
                break
            if text == "/new":
                await agent.start_new_conversation()
                print("Started a new conversation.")
                continue

            try:
                await agent.send_message(text)
                print()
            except AgentError as e:
                print(f"\nError: {e}", file=sys.stderr)
                agent.clear_error()
    finally:
        await store.close()
        await agent.llm.aclose()


async def export_memory(settings: Settings, day: date | None, output: Path | None) -> None:
    """Export the memories created on one day as a markdown log."""
    from .models import init_database
    from .storage import SQLMemoryStore

    day = day or datetime.now(timezone.utc).date()
    session_maker = await init_database(settings.database_url)
    try:
        log = await SQLMemoryStore(session_maker).export_daily_log(day)
    finally:
        await session_maker.kw["bind"].dispose()

    if output is None:
        print(log, end="")
    else:
        output.write_text(log)
        print(f"Wrote {output}")


def show_config(settings: Settings, check: bool) -> None:
    """Show current configuration."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== claw-agent Configuration ===\n")

    print("Model:")
    print(f"  Endpoint: {settings.base_url}")
    print(f"  Default Model: {settings.default_model}")
    print(f"  Temperature: {settings.temperature}")
    print(f"  Max Tokens: {settings.max_tokens}")
    print(f"  Streaming: {settings.stream}")
    print(f"  System Prompt: {'(set)' if settings.system_prompt else '(none)'}")

    print("\nAgent Loop:")
    print(f"  History Window: {settings.max_conversation_history} messages")
    print(f"  Max Tool Hops: {settings.max_tool_hops}")
    print(f"  Tool Concurrency: {settings.tool_concurrency}")
    print(f"  Request Timeout: {settings.request_timeout}s")

    print("\nCredentials:")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")
    print(f"  Brave Search Key: {mask(settings.brave_search_api_key)}")

    print("\nFeatures:")
    print(f"  Web Search: {settings.enable_web_search}")
    print(f"  Web Fetch: {settings.enable_web_fetch}")
    print(f"  Memory Tools: {settings.enable_memory_tools}")

    print("\nDatabase:")
    print(f"  URL: {settings.database_url}")

    if check:
        print("\n=== Configuration Check ===\n")
        errors = []
        warnings = []

        if not settings.openrouter_api_key:
            errors.append("OPENROUTER_API_KEY is required")

        if settings.enable_web_search and not settings.brave_search_api_key:
            warnings.append("web_search is enabled but BRAVE_SEARCH_API_KEY is not set")

        if errors:
            print("Errors:")
            for e in errors:
                print(f"   - {e}")

        if warnings:
            print("Warnings:")
            for w in warnings:
                print(f"   - {w}")

        if not errors and not warnings:
            print("Configuration looks good!")
        elif not errors:
            print("\nConfiguration is valid (with warnings)")
        else:
            print("\nConfiguration has errors - fix them before chatting")


async def init_agent(settings: Settings) -> None:
    """Create a starter .env file and the database."""
    from .models import init_database

    env_file = Path(".env")

    if not env_file.exists():
        env_content = """# claw-agent Configuration

# === REQUIRED ===
OPENROUTER_API_KEY=

# === OPTIONAL ===
# BRAVE_SEARCH_API_KEY=
DEFAULT_MODEL=anthropic/claude-sonnet-4-5
# SYSTEM_PROMPT=
TEMPERATURE=0.7
MAX_TOKENS=4096
MAX_CONVERSATION_HISTORY=50
MAX_TOOL_HOPS=10

# Database
DATABASE_URL=sqlite+aiosqlite:///./data/claw.db
"""
        env_file.write_text(env_content)
        print(f"Created {env_file}")
    else:
        print(f"{env_file} already exists")

    await init_database(settings.database_url)
    print(f"Database ready at {settings.database_url}")
    print("\nNext: add your OPENROUTER_API_KEY to .env, then run: claw-agent chat")


if __name__ == "__main__":
    main()

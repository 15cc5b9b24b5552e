#!/usr/bin/env python3
"""
MCP Flow - Main Entry Point

Run a short session against an MCP server over Streamable HTTP:
initialize, list tools, call a tool, optionally replay the offline queue,
then close the session.
"""

import argparse
import asyncio
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

from mcplink import (
    Config,
    HttpTransport,
    InMemoryQueueStorage,
    JsonFileQueueStorage,
    McpClient,
    McpClientError,
    OfflineQueue,
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if present
        if hasattr(record, "method"):
            log_data["method"] = record.method
        if hasattr(record, "session_id"):
            log_data["session_id"] = record.session_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(config: Config, verbose: bool = False) -> None:
    """
    Set up logging configuration.

    Args:
        config: Configuration object
        verbose: Whether to enable verbose logging
    """
    log_level = logging.DEBUG if verbose else getattr(logging, config.get_log_level().upper(), logging.INFO)
    log_format = config.get_log_format()
    log_file = config.get_log_file()

    if log_format.lower() == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # Console output goes to stderr; stdout carries the flow's results
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def parse_arguments() -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Run an initialize / list / call flow against an MCP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python mcpflow.py
  python mcpflow.py --host http://127.0.0.1:3001 --message "hello"
  python mcpflow.py --config client.json --tool add --arguments '{"a": 1, "b": 2}'
  python mcpflow.py --queue --flush
        """
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to configuration file (JSON)"
    )

    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file (default: .env in the working directory)"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Override server base URL"
    )

    parser.add_argument(
        "--tool",
        type=str,
        default="echo",
        help="Tool to call (default: echo)"
    )

    parser.add_argument(
        "--message",
        type=str,
        default="hi",
        help="Message passed to the echo tool (default: hi)"
    )

    parser.add_argument(
        "--arguments",
        type=str,
        default=None,
        help="JSON object of tool arguments (overrides --message)"
    )

    parser.add_argument(
        "--queue",
        action="store_true",
        help="Enable the offline queue regardless of configuration"
    )

    parser.add_argument(
        "--flush",
        action="store_true",
        help="Replay the offline queue after the tool call"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error", "critical"],
        default=None,
        help="Override log level"
    )

    return parser.parse_args()


def build_queue(config: Config, force: bool = False):
    """Build the offline queue from configuration (None when disabled)."""
    if not (force or config.get_queue_enabled()):
        return None

    storage_path = config.get_queue_storage_path()
    storage = JsonFileQueueStorage(storage_path) if storage_path else InMemoryQueueStorage()
    return OfflineQueue(storage=storage, max_queue_size=config.get_max_queue_size())


def tool_arguments(args: argparse.Namespace) -> dict:
    if args.arguments:
        arguments = json.loads(args.arguments)
        if not isinstance(arguments, dict):
            raise ValueError("--arguments must be a JSON object")
        return arguments
    return {"message": args.message}


async def run_flow(client: McpClient, args: argparse.Namespace) -> None:
    """
    Run the session flow and print each result.

    Args:
        client: Client bound to the configured transport
        args: Parsed arguments
    """
    info = await client.initialize({"name": "mcpflow", "version": "1.0.0"})
    print(f"Initialized: {json.dumps(info)}")

    tools = await client.list_tools()
    if isinstance(tools, dict) and "tools" in tools:
        print(f"Tools: {', '.join(tool.get('name', '?') for tool in tools['tools'])}")
    else:
        print(f"Tools: {json.dumps(tools)}")

    result = await client.call_tool(args.tool, tool_arguments(args))
    print(f"{args.tool}: {json.dumps(result)}")

    if args.flush:
        sent = await client.flush_queue()
        print(f"Flushed {sent} queued request(s)")


async def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = parse_arguments()

    load_dotenv(args.env_file)

    try:
        config = Config(args.config)
    except McpClientError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Override config with CLI arguments
    if args.host:
        config.config["server"]["url"] = args.host
    if args.log_level:
        config.config["logging"]["level"] = args.log_level

    setup_logging(config, args.verbose)

    logging.info("=" * 60)
    logging.info(f"MCP Flow against {config.get_server_url()}{config.get_endpoint()}")
    logging.info("=" * 60)

    transport = HttpTransport(config.get_transport_config())
    client = McpClient(transport, build_queue(config, args.queue))

    try:
        await run_flow(client, args)
    except McpClientError as e:
        logging.error(f"MCP error: {e}")
        return 1
    except ValueError as e:
        logging.error(f"Invalid arguments: {e}")
        return 1
    except Exception as e:
        logging.exception(f"Unexpected error: {e}")
        return 1
    finally:
        await client.close()
        await transport.aclose()

    logging.info("MCP Flow finished")
    return 0


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logging.exception(f"Fatal error: {e}")
        sys.exit(1)

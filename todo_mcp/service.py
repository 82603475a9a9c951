"""
Process entry point for the todo-for-ai MCP adapter.

Parses the command line, builds the settings once, wires the API client,
tool invoker and transport together and runs until SIGINT/SIGTERM or until
the transport ends (e.g. the stdio client disconnects).
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SettingsValidationError

from todo_mcp import SERVER_NAME, __version__
from todo_mcp.core.api_client import TodoApiClient
from todo_mcp.core.tool_invoker import ApiToolInvoker, LoggingToolInvoker
from todo_mcp.errors import install_global_error_handlers
from todo_mcp.settings import Settings, TransportType, load_settings
from todo_mcp.transports import create_transport

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger("todo_mcp.service")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments; unset flags stay ``None``."""
    parser = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description="Expose todo-for-ai task tools to MCP clients over stdio or HTTP",
    )

    # Remote API
    parser.add_argument("--api-base-url", "--base-url", dest="api_base_url",
                        help="todo-for-ai API base URL (env TODO_API_BASE_URL)")
    parser.add_argument("--api-token", "--token", dest="api_token",
                        help="API token (env TODO_API_TOKEN)")
    parser.add_argument("--api-timeout", "--timeout", dest="api_timeout", type=int,
                        help="API request timeout in milliseconds (env TODO_API_TIMEOUT)")
    parser.add_argument("--log-level", dest="log_level",
                        choices=["debug", "info", "warn", "warning", "error"],
                        help="Log level (env LOG_LEVEL)")

    # Transport
    parser.add_argument("--transport", choices=[t.value for t in TransportType],
                        help="Transport to serve (env TODO_TRANSPORT, default stdio)")
    parser.add_argument("--http-port", dest="http_port", type=int,
                        help="HTTP port (env TODO_HTTP_PORT)")
    parser.add_argument("--http-host", dest="http_host",
                        help="HTTP bind address (env TODO_HTTP_HOST)")
    parser.add_argument("--session-timeout", dest="session_timeout", type=int,
                        help="Idle session timeout in milliseconds (env TODO_SESSION_TIMEOUT)")
    parser.add_argument("--dns-protection", dest="dns_protection", action="store_true", default=None,
                        help="Enable DNS-rebinding protection (env TODO_DNS_PROTECTION)")
    parser.add_argument("--allowed-origins", dest="allowed_origins",
                        help="Comma separated allowed origins, '*' wildcards allowed")
    parser.add_argument("--allowed-hosts", dest="allowed_hosts",
                        help="Comma separated Host values accepted with DNS protection")
    parser.add_argument("--max-connections", dest="max_connections", type=int,
                        help="Maximum concurrent HTTP sessions (env TODO_MAX_CONNECTIONS)")

    parser.add_argument("--version", action="version", version=f"{SERVER_NAME} {__version__}")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: Dict[str, Any] = {
        k: v for k, v in vars(args).items() if k in Settings.model_fields
    }
    return load_settings(overrides)


def configure_logging(settings: Settings) -> None:
    # stdout carries the stdio protocol stream; logs go to stderr only.
    logging.basicConfig(
        level=settings.logging_level,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


async def run(settings: Settings) -> None:
    """Serve until a termination signal arrives or the transport ends."""

    loop = asyncio.get_running_loop()
    install_global_error_handlers(loop)

    client = TodoApiClient(settings)
    invoker = LoggingToolInvoker(ApiToolInvoker(client))
    transport = create_transport(settings, invoker)

    stop_event = asyncio.Event()

    def _request_stop(sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig)
        except NotImplementedError:  # pragma: no cover – Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    try:
        await transport.start()
        stop_waiter = asyncio.create_task(stop_event.wait())
        closed_waiter = asyncio.create_task(transport.wait_closed())
        done, pending = await asyncio.wait(
            {stop_waiter, closed_waiter}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        if closed_waiter in done and closed_waiter.exception() is not None:
            logger.error("Transport failed", exc_info=closed_waiter.exception())
        elif closed_waiter in done:
            logger.info("Transport closed")
    finally:
        await transport.stop()
        await invoker.aclose()
        logger.info("Shutdown complete")


def main(argv: Optional[List[str]] = None) -> None:
    """Console entry point (``todo-for-ai-mcp``)."""
    args = parse_args(argv)

    try:
        settings = settings_from_args(args)
    except SettingsValidationError as exc:
        logging.basicConfig(format=LOG_FORMAT, stream=sys.stderr)
        logger.error("Invalid configuration:\n%s", exc)
        raise SystemExit(1) from None

    configure_logging(settings)
    logger.info("Starting %s %s with %s", SERVER_NAME, __version__, settings.describe())

    if not settings.api_token:
        logger.error(
            "TODO_API_TOKEN is required. Pass --api-token or set the environment variable; "
            "tokens are issued at https://todo4ai.org"
        )
        raise SystemExit(1)

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()

"""Standalone print agent for one theater.

    python -m src.theaterpos.agent --backend http://pos.example/api/v1 \
        --tenant-id <uuid> --tenant-name "Screen One" --username printer1

The password and PIN are read from THEATERPOS_AGENT_PASSWORD and
THEATERPOS_AGENT_PIN when not given on the command line. Use a dedicated
staff account: a login evicts that account's other session.
"""

import argparse
import asyncio
import os
import sys

from src.theaterpos.agent.client import BackendClient
from src.theaterpos.agent.printer import build_printer
from src.theaterpos.agent.registration import AgentRegistration
from src.theaterpos.agent.runner import AgentCredentials, PrintAgent
from src.theaterpos.core.config import get_settings
from src.theaterpos.core.logging import get_logger, setup_logging
from src.theaterpos.models.enums import AgentState

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="theaterpos-agent", description=__doc__.split("\n")[0])
    parser.add_argument("--backend", default=settings.agent_backend_url, help="API base URL")
    parser.add_argument("--tenant-id", required=True, help="Theater id")
    parser.add_argument("--tenant-name", default="", help="Name printed on tickets")
    parser.add_argument("--username", required=True, help="Staff username for the agent")
    parser.add_argument("--password", default=os.environ.get("THEATERPOS_AGENT_PASSWORD"))
    parser.add_argument("--pin", default=os.environ.get("THEATERPOS_AGENT_PIN"))
    parser.add_argument(
        "--spool-dir",
        default=settings.printer_spool_dir,
        help="Write tickets here instead of the log",
    )
    parser.add_argument("--debug", action="store_true", help="Human-readable logs")
    return parser


async def run_agent(args: argparse.Namespace) -> int:
    settings = get_settings()
    registration = AgentRegistration(tenant_id=args.tenant_id, tenant_name=args.tenant_name)
    client = BackendClient(args.backend, probe_timeout=settings.agent_probe_timeout_seconds)
    if not await client.probe():
        logger.warning("Backend not reachable yet, agent will keep retrying", backend=args.backend)

    agent = PrintAgent(
        registration=registration,
        client=client,
        printer=build_printer(args.spool_dir),
        credentials=AgentCredentials(username=args.username, password=args.password, pin=args.pin),
        backoff_initial=settings.agent_backoff_initial_seconds,
        backoff_max=settings.agent_backoff_max_seconds,
        keepalive=settings.sse_keepalive_seconds,
    )
    try:
        await agent.run()
    finally:
        await agent.shutdown()
    return 1 if registration.state is AgentState.ERROR else 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug)
    if not args.password:
        logger.error("No password given; set THEATERPOS_AGENT_PASSWORD or pass --password")
        return 2
    try:
        return asyncio.run(run_agent(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())

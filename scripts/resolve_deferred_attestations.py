#!/usr/bin/env python3
"""
Deferred Attestation Resolver

Finds application versions that were stored with a transaction hash but no
attestation id and resolves each one against its chain.

Usage:
    rpgf-resolve-deferred                     # All rounds
    rpgf-resolve-deferred --round-id <id>     # One round
"""

import argparse
import asyncio

import structlog

from rpgf.app import RPGFApp
from rpgf.config import settings
from rpgf.errors import RPGFError
from rpgf.monitoring.logging import bind_round_context, clear_context, configure_logging

logger = structlog.get_logger(__name__)


async def resolve_pending(app: RPGFApp, round_id: str | None = None) -> dict[str, int]:
    """
    Resolve every pending deferred attestation.

    Returns:
        Counts of resolved, skipped and failed applications
    """
    counts = {"resolved": 0, "skipped": 0, "errors": 0}
    pending = await app.applications.applications.list_pending_attestations(round_id)
    logger.info("deferred_attestations_found", count=len(pending), round_id=round_id)

    for application in pending:
        bind_round_context(application.round_id)
        try:
            promoted = await app.applications.resolve_deferred_attestation(application.id)
        except RPGFError as e:
            counts["errors"] += 1
            logger.warning(
                "deferred_attestation_failed",
                application_id=application.id,
                code=e.code,
                error=e.message,
            )
            continue
        finally:
            clear_context()
        counts["resolved" if promoted else "skipped"] += 1

    return counts


async def run(round_id: str | None) -> dict[str, int]:
    app = RPGFApp()
    await app.initialize()
    try:
        counts = await resolve_pending(app, round_id)
    finally:
        await app.shutdown()
    logger.info("deferred_attestations_resolved", **counts)
    return counts


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Resolve deferred application attestations")
    parser.add_argument("--round-id", default=None, help="Only resolve applications of this round")
    args = parser.parse_args()
    configure_logging(level=settings.log_level, json_output=settings.log_json)
    asyncio.run(run(args.round_id))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Chain Setup Script

Registers (or updates) a chain rounds can be anchored to, optionally with
the EAS contract and schemas used for application attestations. Also
applies the database constraints on first run.

Usage:
    python -m scripts.add_chain --chain-id 10 --name Optimism --rpc-url https://...
    python -m scripts.add_chain --chain-id 10 --rpc-url https://... \\
        --eas-contract 0x4200... --application-schema 0x... --review-schema 0x...
"""

import argparse
import asyncio

import structlog

from rpgf.config import settings
from rpgf.database.client import Neo4jClient
from rpgf.database.schema import SchemaManager
from rpgf.models.round import AttestationSetup, Chain
from rpgf.monitoring.logging import configure_logging
from rpgf.repositories.round_repository import RoundRepository

logger = structlog.get_logger(__name__)


def build_chain(args: argparse.Namespace) -> Chain:
    setup = None
    if args.eas_contract:
        if not args.application_schema:
            raise SystemExit("--application-schema is required with --eas-contract")
        setup = AttestationSetup(
            contract_address=args.eas_contract,
            application_schema_id=args.application_schema,
            review_schema_id=args.review_schema,
        )
    return Chain(
        chain_id=args.chain_id,
        name=args.name,
        rpc_url=args.rpc_url,
        attestation_setup=setup,
    )


async def run(chain: Chain, skip_schema: bool) -> None:
    client = Neo4jClient()
    await client.connect()
    try:
        if not skip_schema:
            await SchemaManager(client).setup_all()
        await RoundRepository(client).save_chain(chain)
        logger.info(
            "chain_saved",
            chain_id=chain.chain_id,
            name=chain.name,
            attestations=chain.attestation_setup is not None,
        )
    finally:
        await client.close()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Register a chain for RPGF rounds")
    parser.add_argument("--chain-id", type=int, required=True)
    parser.add_argument("--name", default="")
    parser.add_argument("--rpc-url", required=True)
    parser.add_argument("--eas-contract", default=None, help="EAS contract address")
    parser.add_argument("--application-schema", default=None, help="Application attestation schema UID")
    parser.add_argument("--review-schema", default=None, help="Review attestation schema UID")
    parser.add_argument("--skip-schema", action="store_true", help="Do not apply database constraints")
    args = parser.parse_args()

    configure_logging(level=settings.log_level, json_output=settings.log_json)
    asyncio.run(run(build_chain(args), args.skip_schema))


if __name__ == "__main__":
    main()

"""
One-off data repair commands.

Run: python -m clinicflow.maintenance <command>
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.logging import setup_json_logging
from clinicflow.db import session_scope
from clinicflow.services.clinics import backfill_slugs
from clinicflow.services.protocols import apply_default_protocols_to_all
from clinicflow.services.referrals import backfill_referral_codes
from clinicflow.services.relationships import dedupe_primary_relationships

_log = logging.getLogger("clinicflow.maintenance")

COMMANDS: dict[str, Callable[[AsyncSession], Awaitable[int]]] = {
    "backfill-referral-codes": backfill_referral_codes,
    "backfill-clinic-slugs": backfill_slugs,
    "dedupe-primary-relationships": dedupe_primary_relationships,
    "apply-default-protocols": apply_default_protocols_to_all,
}


async def run(command: str) -> int:
    """Run one command in its own transaction and return the number of rows changed."""
    async with session_scope() as session:
        changed = await COMMANDS[command](session)
    _log.info("maintenance finished", extra={"command": command, "changed": changed})
    return changed


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="clinicflow.maintenance")
    parser.add_argument("command", choices=sorted(COMMANDS))
    args = parser.parse_args(argv)

    setup_json_logging()
    changed = asyncio.run(run(args.command))
    print(f"{args.command}: {changed} row(s) changed")
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from transfer_backend.config import settings
from transfer_backend.db import dispose_engines
from transfer_backend.deps import build_share_service
from transfer_backend.domain.shares import format_file_size, is_expired
from transfer_backend.errors import NotConfiguredError

logger = logging.getLogger("cleanup_expired")


async def _run(*, dry_run: bool) -> int:
    service = await build_share_service(settings)
    try:
        if dry_run:
            now = service.now()
            expired = [m for m in await service.list_local_shares() if is_expired(m, now)]
            for m in expired:
                print(f"{m.share_id}\t{m.file_name}\t{format_file_size(m.file_size)}\t{m.expires_at}")
            print(f"{len(expired)} expired share(s) would be removed")
            return 0

        try:
            removed = await service.cleanup_expired_shares()
        except NotConfiguredError as e:
            logger.error("%s", e)
            return 2
        print(f"removed {removed} expired share(s)")
        return 0
    finally:
        await dispose_engines()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Delete locally indexed shares that have passed their expiry time."
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List expired shares without deleting anything.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    return asyncio.run(_run(dry_run=args.dry_run))


if __name__ == "__main__":
    sys.exit(main())

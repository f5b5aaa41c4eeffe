"""
Seed the portal's teams and backfill the `teams` field on user documents.

Uses the store selected by PORTAL_STORE_BACKEND (Firestore in production).
Safe to re-run: teams are only created when the collection is empty.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal.config import get_settings
from portal.dependencies import get_store
from shared.errors import StoreError
from teams.seed import INITIAL_TEAMS, backfill_user_teams, initialize_teams

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize portal teams")
    parser.add_argument(
        "--backfill-users",
        action="store_true",
        help="Also give every user document without a teams field an empty one",
    )
    parser.add_argument(
        "--skip-teams",
        action="store_true",
        help="Do not create the initial teams",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    if get_settings().store_backend == "memory":
        logger.warning(
            "PORTAL_STORE_BACKEND is 'memory'; nothing will be persisted."
        )
    store = get_store()

    try:
        if not args.skip_teams:
            if initialize_teams(store):
                logger.info("Created %d teams", len(INITIAL_TEAMS))
        if args.backfill_users:
            updated = backfill_user_teams(store)
            logger.info("Backfilled %d user(s)", updated)
    except StoreError as e:
        logger.error("Initialization failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
actions.py — Apply an explicit action to a stored release.

Usage (inside the matcher container):
    python actions.py <guid> <add|upgrade|reset|ignore|unignore> [movie|show]

  add       NEW / ATTENTION_NEEDED (movies), NEW_SHOW / NEW_SEASON (shows) → ADDED
  upgrade   UPGRADE_CANDIDATE → UPGRADED (movies only)
  reset     any status → NEW / NEW_SHOW; the only way out of ADDED / UPGRADED
  ignore    set the manual-ignore flag (status unchanged)
  unignore  clear the manual-ignore flag

The next sync leaves ADDED / UPGRADED records alone.
"""

import logging
import sys

from constants import DB_PATH
from errors import InvalidActionError, PersistenceError
from store import ReleaseStore

# Set up logging (same format as sync)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("matcher")

STATUS_ACTIONS = ("add", "upgrade", "reset")
FLAG_ACTIONS = ("ignore", "unignore")
MEDIA_TYPES = ("movie", "show")


def run_action(store: ReleaseStore, guid: str, action: str, media_type: str = "movie"):
    """Apply one action; returns the updated record."""
    tv = media_type == "show"
    if action in FLAG_ACTIONS:
        if tv:
            store.set_tv_manual_ignore(guid, action == "ignore")
            return store.get_tv_by_guid(guid)
        store.set_manual_ignore(guid, action == "ignore")
        return store.get_by_guid(guid)
    if tv:
        return store.apply_tv_action(guid, action)
    return store.apply_action(guid, action)


def main():
    if len(sys.argv) < 3 or len(sys.argv) > 4:
        print("Usage: python actions.py <guid> <add|upgrade|reset|ignore|unignore> [movie|show]")
        print()
        print("  guid    feed guid of the release")
        print("  action  status action or manual-ignore toggle")
        print("  type    'movie' (default) or 'show'")
        sys.exit(1)

    guid = sys.argv[1]
    action = sys.argv[2].lower()
    if action not in STATUS_ACTIONS + FLAG_ACTIONS:
        log.error(f"action must be one of {', '.join(STATUS_ACTIONS + FLAG_ACTIONS)}, got '{sys.argv[2]}'")
        sys.exit(1)

    media_type = "movie"
    if len(sys.argv) == 4:
        media_type = sys.argv[3].lower()
        if media_type not in MEDIA_TYPES:
            log.error(f"type must be 'movie' or 'show', got '{sys.argv[3]}'")
            sys.exit(1)

    store = ReleaseStore(DB_PATH)
    try:
        record = run_action(store, guid, action, media_type)
    except (InvalidActionError, PersistenceError) as e:
        log.error(str(e))
        sys.exit(1)
    finally:
        store.close()

    flag = " (manually ignored)" if record.manually_ignored else ""
    log.info(f"{record.title}: {record.status.value}{flag}")


if __name__ == "__main__":
    main()

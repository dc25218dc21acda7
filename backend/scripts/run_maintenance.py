#!/usr/bin/env python
"""Run scheduled maintenance jobs from cron or a workflow engine.

Each subcommand opens its own session, runs one pass, and prints a
summary. The process exits non-zero when the pass could not run or
left connections in an error state.

Usage:
    python -m scripts.run_maintenance refresh-tokens
    python -m scripts.run_maintenance health-check
    python -m scripts.run_maintenance purge-oauth-states
    python -m scripts.run_maintenance run-scheduled
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_session_local
from logging_config import setup_logging
from services.dispatch_service import DispatchService, default_workflow_client
from services.exceptions import IntegrationNotConfigured
from services.oauth_state_service import OAuthStateService
from services.token_refresh_service import TokenRefreshService


def refresh_tokens(db) -> int:
    report = TokenRefreshService().refresh_expiring(db)
    print(f"Checked {report.checked} connections")
    print(f"  Refreshed:       {report.refreshed}")
    print(f"  Needs reconnect: {report.needs_reconnect}")
    print(f"  Errors:          {report.errors}")
    for outcome in report.outcomes:
        if outcome.status in ("needs_reconnect", "error"):
            print(f"  - {outcome.client_id}: {outcome.status} ({outcome.error})")
    return 1 if report.errors else 0


def health_check(db) -> int:
    report = TokenRefreshService().health_check(db)
    print(f"Checked {report.checked} connections")
    print(f"  Healthy:         {report.healthy}")
    print(f"  Needs reconnect: {report.needs_reconnect}")
    print(f"  Errors:          {report.errors}")
    for outcome in report.outcomes:
        if outcome.status != "healthy":
            print(f"  - {outcome.client_name} (Realm: {outcome.realm_id}): {outcome.status}")
    if report.alert_id:
        print(f"Alert queued: {report.alert_id}")
    return 1 if report.errors else 0


def purge_oauth_states(db) -> int:
    deleted = OAuthStateService().purge_expired(db)
    db.commit()
    print(f"Deleted {deleted} expired OAuth states")
    return 0


def run_scheduled(db) -> int:
    try:
        with default_workflow_client() as workflow:
            batch = DispatchService(workflow_client=workflow).trigger_scheduled(db)
    except IntegrationNotConfigured as e:
        print(f"Error: {e}")
        return 1
    print(f"Dispatched {batch.total} reviews")
    print(f"  Processing: {batch.success}")
    print(f"  Failed:     {batch.error}")
    print(f"  Skipped:    {batch.skipped}")
    for result in batch.results:
        if result.status != "processing":
            print(f"  - {result.client_name or result.client_id}: {result.status} ({result.error})")
    return 1 if batch.error else 0


COMMANDS = {
    "refresh-tokens": refresh_tokens,
    "health-check": health_check,
    "purge-oauth-states": purge_oauth_states,
    "run-scheduled": run_scheduled,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a maintenance pass")
    parser.add_argument("command", choices=sorted(COMMANDS))
    args = parser.parse_args(argv)

    setup_logging()
    db = get_session_local()()
    try:
        return COMMANDS[args.command](db)
    except Exception as e:
        db.rollback()
        print(f"Error: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

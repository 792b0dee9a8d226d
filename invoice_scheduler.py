#!/usr/bin/env python3
"""
Invoice Robot Scheduler - Periodic Job Trigger

Triggers the fetch and analyze jobs of the Invoice Robot API on a fixed
interval, and sweeps stale approval requests once per day. Stands in for a
timer-triggered host (cron, Azure Functions timer, Logic Apps recurrence).

Usage:
    python invoice_scheduler.py --interval 60
    python invoice_scheduler.py --once
"""

import argparse
import time
import requests
from datetime import datetime, timedelta

# Configuration
API_BASE_URL = "http://127.0.0.1:8000"
REQUEST_TIMEOUT = 600


class JobRunner:
    """Calls the API job endpoints and prints what happened"""

    def __init__(self, api_url: str, fetch_days: int | None = None):
        self.api_url = api_url.rstrip("/")
        self.fetch_days = fetch_days
        self.last_expiry_sweep: datetime | None = None

    def _post(self, path: str, params: dict | None = None) -> dict | None:
        try:
            response = requests.post(f"{self.api_url}{path}", params=params, timeout=REQUEST_TIMEOUT)
        except requests.exceptions.Timeout:
            print(f"⏱️  {path} timed out")
            return None
        except requests.exceptions.RequestException as e:
            print(f"❌ {path} failed: {e}")
            return None

        if response.status_code != 200:
            print(f"❌ API Error on {path}: {response.status_code}")
            print(f"   {response.text}")
            return None

        return response.json()

    def run_cycle(self):
        print("\n" + "=" * 70)
        print(f"🔄 JOB CYCLE {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print("=" * 70)

        params = {"days": self.fetch_days} if self.fetch_days else None
        fetched = self._post("/invoices/fetch", params)
        if fetched is not None:
            print("📥 FETCH:")
            print(f"   Projects synced: {fetched['projects_synced']}")
            print(f"   New invoices: {fetched['invoices_added']} / {fetched['invoices_seen']}")

        analyzed = self._post("/invoices/analyze")
        if analyzed is not None:
            counts = analyzed["counts"]
            print("🧠 ANALYZE:")
            print(f"   Invoices: {analyzed['total']}")
            print(f"   ✅ Matched automatically: {counts.get('matched_auto', 0)}")
            print(f"   📧 Sent for approval: {counts.get('pending_approval', 0)}")
            print(f"   ❓ No project found: {counts.get('analysis_failed', 0)}")
            skipped = counts.get("skipped_no_document", 0) + counts.get("skipped_extraction_failed", 0)
            print(f"   ⏭️  Skipped (retry next cycle): {skipped}")
            if analyzed["conflicts"]:
                print(f"   ⚠️  Conflicts: {analyzed['conflicts']}")

        if self.last_expiry_sweep is None or datetime.now() - self.last_expiry_sweep >= timedelta(days=1):
            expired = self._post("/approvals/expire")
            if expired is not None:
                self.last_expiry_sweep = datetime.now()
                print(f"🧹 Expired approval requests: {expired['expired']}")

        print("=" * 70)


def main():
    parser = argparse.ArgumentParser(
        description='Trigger Invoice Robot fetch and analyze jobs periodically'
    )
    parser.add_argument(
        '--interval',
        type=int,
        default=60,
        help='Minutes between job cycles (default: 60)'
    )
    parser.add_argument(
        '--days',
        type=int,
        default=None,
        help='Fetch invoices from the last N days (default: server FETCH_DAYS)'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single cycle and exit'
    )
    parser.add_argument(
        '--api-url',
        default=API_BASE_URL,
        help=f'API base URL (default: {API_BASE_URL})'
    )

    args = parser.parse_args()
    runner = JobRunner(args.api_url, fetch_days=args.days)

    print("=" * 70)
    print("⏰ INVOICE ROBOT SCHEDULER")
    print("=" * 70)
    print(f"API: {runner.api_url}")
    print(f"Interval: {args.interval} min")
    print("Press Ctrl+C to stop")
    print("=" * 70)

    if args.once:
        runner.run_cycle()
        return

    try:
        while True:
            runner.run_cycle()
            time.sleep(args.interval * 60)
    except KeyboardInterrupt:
        print("\n\n👋 Stopping scheduler...")

    print("✅ Scheduler stopped")


if __name__ == "__main__":
    main()

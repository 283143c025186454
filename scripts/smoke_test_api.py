#!/usr/bin/env python3
"""
Smoke test script for the Plant Care Reminders API.
Runs against a live server seeded with scripts/seed_demo_data.py.
"""

import requests
import sys
from datetime import datetime, timedelta, timezone

BASE_URL = "http://localhost:8000"
API_BASE = f"{BASE_URL}/api/v1/reminders"


class Colors:
    GREEN = '\033[92m'
    RED = '\033[91m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    END = '\033[0m'


def print_test(name: str):
    print(f"\n{Colors.BLUE}=== {name} ==={Colors.END}")


def print_success(msg: str):
    print(f"{Colors.GREEN}✓ {msg}{Colors.END}")


def print_error(msg: str):
    print(f"{Colors.RED}✗ {msg}{Colors.END}")


def print_info(msg: str):
    print(f"{Colors.YELLOW}ℹ {msg}{Colors.END}")


def test_health_checks():
    """Test health check endpoints."""
    print_test("Health Checks")

    try:
        r = requests.get(f"{BASE_URL}/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "healthy"
        print_success("GET /health - Detailed health check")
        print_info(f"Database: {data.get('database', 'unknown')}")
    except Exception as e:
        print_error(f"GET /health - {str(e)}")
        return False

    return True


def test_reads():
    """Grouped reminders, stats and attention."""
    print_test("Reads")
    ok = True

    try:
        r = requests.get(API_BASE)
        assert r.status_code == 200
        data = r.json()
        counts = {bucket: len(data[bucket]) for bucket in ("urgent", "high", "medium", "low")}
        print_success(f"GET /reminders - {counts}")
    except Exception as e:
        print_error(f"GET /reminders - {str(e)}")
        ok = False

    try:
        r = requests.get(f"{API_BASE}/stats")
        assert r.status_code == 200
        print_success(f"GET /reminders/stats - {r.json()}")
    except Exception as e:
        print_error(f"GET /reminders/stats - {str(e)}")
        ok = False

    try:
        r = requests.get(f"{API_BASE}/attention")
        assert r.status_code == 200
        data = r.json()
        print_success(f"GET /reminders/attention - {data['summary']}")
        for status in data["statuses"]:
            print_info(f"{status['plant_id']}: {status['priority_level']} {status['reasons']}")
    except Exception as e:
        print_error(f"GET /reminders/attention - {str(e)}")
        ok = False

    return ok


def test_commands():
    """Single and batch commands against the demo reminders."""
    print_test("Commands")
    ok = True

    try:
        r = requests.post(f"{API_BASE}/demo-r1/snooze", json={"days": 1})
        assert r.status_code == 200, r.text
        print_success(f"POST /reminders/demo-r1/snooze - now due {r.json()['scheduled_for']}")
    except Exception as e:
        print_error(f"POST /reminders/demo-r1/snooze - {str(e)}")
        ok = False

    try:
        target = (datetime.now(timezone.utc) + timedelta(days=5)).isoformat()
        r = requests.post(f"{API_BASE}/demo-r2/reschedule", json={"scheduled_for": target})
        assert r.status_code == 200, r.text
        print_success("POST /reminders/demo-r2/reschedule - moved to explicit date")
    except Exception as e:
        print_error(f"POST /reminders/demo-r2/reschedule - {str(e)}")
        ok = False

    try:
        r = requests.post(f"{API_BASE}/demo-r6/snooze", json={"days": 1})
        assert r.status_code == 400
        print_success(f"POST /reminders/demo-r6/snooze - rejected as expected: {r.json()['detail']}")
    except Exception as e:
        print_error(f"POST /reminders/demo-r6/snooze - {str(e)}")
        ok = False

    try:
        r = requests.post(f"{API_BASE}/batch/done", json={"reminder_ids": ["demo-r3", "demo-r5", "unknown"]})
        assert r.status_code == 200
        data = r.json()
        assert data["succeeded"] == 2
        print_success(f"POST /reminders/batch/done - {data['succeeded']} succeeded, {data['failed']} failed")
    except Exception as e:
        print_error(f"POST /reminders/batch/done - {str(e)}")
        ok = False

    try:
        r = requests.post(f"{API_BASE}/demo-r3/done")
        assert r.status_code == 200
        assert r.json()["status"] == "unchanged"
        print_success("POST /reminders/demo-r3/done - second completion is a no-op")
    except Exception as e:
        print_error(f"POST /reminders/demo-r3/done - {str(e)}")
        ok = False

    return ok


def main():
    """Run all checks."""
    print(f"\n{Colors.BLUE}{'='*60}")
    print("Plant Care Reminders API - Smoke Test")
    print(f"{'='*60}{Colors.END}\n")

    print_info(f"Testing against: {BASE_URL}")
    print_info("Seed demo data first: python -m scripts.seed_demo_data\n")

    if not test_health_checks():
        print_error("\nHealth checks failed. Is the API running?")
        sys.exit(1)

    failed = not test_reads()
    failed = not test_commands() or failed

    print(f"\n{Colors.GREEN}{'='*60}")
    print("Smoke test completed!" if not failed else "Smoke test completed with errors")
    print(f"{'='*60}{Colors.END}\n")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Smoke test for a running Web Provisioner: health, submit, poll until terminal
"""
import os
import sys
import time

import requests

BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:3000")
API_KEY = os.getenv("API_KEY", "")
POLL_SECONDS = int(os.getenv("SMOKE_TIMEOUT", "300"))


def check_health(session):
    r = session.get(f"{BASE_URL}/v1/health", timeout=5)
    if r.status_code != 200:
        print(f"❌ /v1/health: status {r.status_code}")
        return False
    body = r.json()
    print(f"✅ /v1/health: status={body.get('status')} database={body.get('database')}")
    return body.get("database") == "ok"


def submit(session, owner):
    r = session.post(f"{BASE_URL}/v1/provisioning/jobs", json={
        "owner": owner,
        "message": "A one page site for a neighbourhood bakery",
        "description": "smoke test",
    }, timeout=10)
    if r.status_code != 202:
        print(f"❌ submit: expected 202, got {r.status_code}: {r.text}")
        return None
    job_id = r.json()["jobId"]
    print(f"✅ submit: {job_id}")
    return job_id


def poll(session, job_id):
    deadline = time.time() + POLL_SECONDS
    last = None
    while time.time() < deadline:
        status = session.get(f"{BASE_URL}/v1/provisioning/jobs/{job_id}", timeout=5).json()
        if (status["status"], status.get("progress")) != last:
            last = (status["status"], status.get("progress"))
            print(f"   {status['status']} progress={status.get('progress')} attempts={status.get('attempts')}")
        if status["status"] in ("completed", "failed", "not_found"):
            return status
        time.sleep(2)
    print("❌ poll: timed out")
    return None


def main():
    """Run all smoke checks"""
    print("🚀 Running smoke tests against", BASE_URL)
    session = requests.Session()
    if API_KEY:
        session.headers["X-API-Key"] = API_KEY

    if not check_health(session):
        return 1

    r = session.post(f"{BASE_URL}/v1/provisioning/jobs", json={"owner": "!!!", "message": "x"}, timeout=10)
    if r.status_code != 422:
        print(f"❌ invalid owner: expected 422, got {r.status_code}")
        return 1
    print("✅ invalid owner rejected")

    job_id = submit(session, os.getenv("SMOKE_OWNER", "smoketest"))
    if not job_id:
        return 1

    final = poll(session, job_id)
    if not final or final["status"] != "completed":
        print(f"❌ job did not complete: {final}")
        return 1

    print(f"✅ completed: {final['result']['urls']['customDomain']}")
    print(session.get(f"{BASE_URL}/v1/provisioning/stats", timeout=5).json())
    return 0


if __name__ == "__main__":
    sys.exit(main())

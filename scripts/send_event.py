#!/usr/bin/env python3
"""Post a sample webhook to a running relay and print the delivery counts.

Usage:
    python scripts/send_event.py [BASE_URL] [EVENT_TYPE]

Set RELAY_WEBHOOK_SECRET to send the shared-secret header.
"""

import os
import sys
import time

import httpx

BASE = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:3001"
EVENT = sys.argv[2] if len(sys.argv) > 2 else "onMessageSent"
HEADER = os.environ.get("RELAY_SECRET_HEADER", "x-cometchat-webhook-secret")


def main() -> int:
    headers = {}
    secret = os.environ.get("RELAY_WEBHOOK_SECRET")
    if secret:
        headers[HEADER] = secret

    body = {
        "event": EVENT,
        "appId": "send_event_script",
        "data": {"text": "hello from send_event.py", "sentAt": int(time.time() * 1000)},
    }
    r = httpx.post(f"{BASE}/webhook", json=body, headers=headers, timeout=30)
    if r.status_code != 200:
        print(f"  WARN /webhook → {r.status_code}: {r.text[:200]}")
        return 1
    data = r.json()
    print(f"Delivered to {data['clients']} of {data['totalClients']} clients")

    health = httpx.get(f"{BASE}/health", timeout=30).json()
    print(f"Relay up {health['uptime_seconds']}s with {health['clients']} clients")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
from __future__ import annotations

import json
import os
import sys
import time

from urllib.request import Request, urlopen
from urllib.error import URLError


def main() -> int:
    base_url = os.getenv("CONCIERGE_API_URL", "http://localhost:8000").rstrip("/")
    try:
        with urlopen(f"{base_url}/healthz", timeout=5) as r:
            print("/healthz:", r.read().decode("utf-8"))
        # Give the service a moment to finish boot
        time.sleep(0.5)
        with urlopen(f"{base_url}/healthz/ready", timeout=5) as r2:
            print("/healthz/ready:", r2.read().decode("utf-8"))
        request = Request(
            f"{base_url}/chat",
            data=json.dumps({"message": "What is A-Minus?"}).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urlopen(request, timeout=30) as r3:
            body = json.loads(r3.read().decode("utf-8"))
            print("/chat routing:", body.get("routing"))
    except (URLError, ValueError) as exc:
        print(f"Smoke test failed: {exc}", file=sys.stderr)
        return 1
    print("Smoke test passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

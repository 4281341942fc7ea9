#!/usr/bin/env python3
"""Smoke-check a running FormRAG deployment: health, then one form query."""

from __future__ import annotations

import os
import sys

import httpx


def main() -> int:
    base_url = os.getenv("FORMRAG_API_URL", "http://localhost:3000").rstrip("/")
    customer_id = os.getenv("FORMRAG_SMOKE_CUSTOMER", "cust-123")
    try:
        with httpx.Client(base_url=base_url, timeout=30.0) as client:
            health = client.get("/health")
            print("/health:", health.status_code, health.text)
            if health.status_code != 200:
                return 1
            answer = client.post(
                "/api/form-query",
                json={"formQuestion": "What is the customer's email address?", "customerId": customer_id},
            )
            print("/api/form-query:", answer.status_code, answer.text)
            answer.raise_for_status()
    except httpx.HTTPError as exc:
        print(f"Smoke check failed: {exc}", file=sys.stderr)
        return 1
    print("Smoke check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Latency check for the admin reporting API.

Usage:
    python scripts/benchmark_analytics.py --url http://localhost:8000 --token $ADMIN_TOKEN --runs 10
"""

import argparse
import statistics
import sys
import time

import requests

ENDPOINTS = {
    "summary": "/api/admin/summary",
    "summary (direct)": "/api/admin/summary?access_type=direct",
    "timeseries": "/api/admin/timeseries",
    "users": "/api/admin/users",
    "export": "/api/admin/export",
}


def time_endpoint(http: requests.Session, url: str, runs: int) -> list[float]:
    """Milliseconds per successful call; failed calls are reported and skipped"""
    samples = []
    for _ in range(runs):
        start = time.perf_counter()
        response = http.get(url, timeout=30)
        if response.status_code != 200:
            print(f"  {url} -> {response.status_code}")
            continue
        samples.append((time.perf_counter() - start) * 1000)
    return samples


def main():
    parser = argparse.ArgumentParser(description="Time the admin reporting endpoints")
    parser.add_argument("--url", default="http://localhost:8000")
    parser.add_argument("--token", default=None)
    parser.add_argument("--runs", type=int, default=5)
    args = parser.parse_args()

    http = requests.Session()
    if args.token:
        http.headers["x-admin-token"] = args.token

    try:
        http.get(f"{args.url}/health", timeout=5).raise_for_status()
    except requests.RequestException as e:
        sys.exit(f"API not reachable at {args.url}: {e}")

    print(f"{'endpoint':<20} {'median':>10} {'worst':>10} {'ok':>5}")
    for name, path in ENDPOINTS.items():
        samples = time_endpoint(http, f"{args.url}{path}", args.runs)
        if not samples:
            print(f"{name:<20} {'-':>10} {'-':>10} {0:>5}")
            continue
        print(f"{name:<20} {statistics.median(samples):>8.0f}ms {max(samples):>8.0f}ms {len(samples):>5}")


if __name__ == "__main__":
    main()

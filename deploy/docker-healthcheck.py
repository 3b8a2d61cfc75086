#!/usr/bin/env python3
"""
Docker Health Check Script for the Task Tracker API

Performs the checks behind the Docker HEALTHCHECK instruction: the /healthz
endpoint must answer with a connected database, and the SQLite file must be
readable. Exits 0 when healthy or degraded, 1 when unhealthy.
"""

import json
import os
import sys
import time
from urllib.error import HTTPError, URLError
from urllib.request import urlopen


def check_http_endpoint(url: str, timeout: int = 5) -> dict:
    """Check the /healthz endpoint and the database status it reports."""
    try:
        with urlopen(url, timeout=timeout) as response:
            if response.status != 200:
                return {"status": "unhealthy", "error": f"HTTP {response.status}"}
            data = json.loads(response.read().decode())
    except HTTPError as e:
        return {"status": "unhealthy", "error": f"HTTP Error: {e.code}"}
    except URLError as e:
        return {"status": "unhealthy", "error": f"Connection Error: {e.reason}"}
    except json.JSONDecodeError:
        return {"status": "unhealthy", "error": "Invalid JSON response"}
    except Exception as e:
        return {"status": "unhealthy", "error": f"Unexpected error: {str(e)}"}

    if not data.get("database_connected"):
        return {"status": "unhealthy", "error": "Database not connected", "response": data}
    return {"status": "healthy", "response": data}


def check_database_file(db_path: str) -> dict:
    """Check that the SQLite database file exists and carries the SQLite header."""
    try:
        if not os.path.exists(db_path):
            # Created on first startup
            return {"status": "warning", "error": "Database file not found"}
        with open(db_path, "rb") as f:
            header = f.read(16)
        if header.startswith(b"SQLite format 3"):
            return {"status": "healthy", "database_path": db_path}
        return {"status": "unhealthy", "error": "Database file corrupted"}
    except Exception as e:
        return {"status": "unhealthy", "error": f"Database check failed: {str(e)}"}


def overall_status(checks: dict) -> tuple:
    """Combine individual check results into (overall, exit_code)."""
    statuses = [check["status"] for check in checks.values()]
    if all(status == "healthy" for status in statuses):
        return "healthy", 0
    if any(status == "unhealthy" for status in statuses):
        return "unhealthy", 1
    return "degraded", 0


def main():
    """Main health check function."""
    port = int(os.getenv("PORT", "3000"))
    db_path = os.getenv("DATABASE_PATH", "task_tracker.db")

    health_results = {
        "timestamp": time.time(),
        "checks": {
            "http": check_http_endpoint(f"http://localhost:{port}/healthz"),
            "database": check_database_file(db_path),
        },
    }
    health_results["overall"], exit_code = overall_status(health_results["checks"])

    if os.getenv("HEALTH_CHECK_VERBOSE", "false").lower() == "true":
        print(json.dumps(health_results, indent=2))
    else:
        print(f"Health: {health_results['overall']}")
        if exit_code != 0:
            for name, check in health_results["checks"].items():
                if check["status"] == "unhealthy":
                    print(f"Failed: {name} - {check.get('error', 'Unknown error')}")

    sys.exit(exit_code)


if __name__ == "__main__":
    main()

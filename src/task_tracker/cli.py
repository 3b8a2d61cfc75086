"""
Click CLI for running the Task Tracker API server.

Reads host, port, database path and log level from options or the HOST,
PORT, DATABASE_PATH and LOG_LEVEL environment variables, verifies the port
and the database before starting, then serves the app with uvicorn.
"""

import logging
import socket
import sys

import click
import uvicorn

from .api import API_PREFIX, DEFAULT_DB_PATH, create_app
from .database import TaskDatabase

logger = logging.getLogger(__name__)

LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]


def check_port_available(host: str, port: int) -> bool:
    """
    Check whether a TCP port can be bound on the given host.

    Args:
        host: Interface address to test
        port: Port number to test

    Returns:
        True if the port is free, False if binding fails
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def initialize_database(db_path: str) -> None:
    """Create the database file and schema ahead of serving requests."""
    database = TaskDatabase(db_path)
    database.close()


def print_startup_banner(host: str, port: int, db_path: str) -> None:
    display_host = "127.0.0.1" if host == "0.0.0.0" else host
    base_url = f"http://{display_host}:{port}"
    print("=" * 60)
    print("TASK TRACKER API STARTED")
    print("=" * 60)
    print(f"API:       {base_url}{API_PREFIX}/tasks")
    print(f"Health:    {base_url}/healthz")
    print(f"Database:  {db_path}")
    print("Identity:  send the x-user-id header with every task request")
    print("=" * 60)


@click.command()
@click.option("--host", default="0.0.0.0", envvar="HOST", show_default=True,
              help="Interface to listen on")
@click.option("--port", default=3000, type=int, envvar="PORT", show_default=True,
              help="Port to listen on")
@click.option("--db-path", default=DEFAULT_DB_PATH, envvar="DATABASE_PATH", show_default=True,
              help="SQLite database file")
@click.option("--log-level", default="info", envvar="LOG_LEVEL", show_default=True,
              type=click.Choice(LOG_LEVELS, case_sensitive=False),
              help="Log verbosity")
def main(host: str, port: int, db_path: str, log_level: str):
    """Run the Task Tracker API server."""
    log_level = log_level.lower()
    logging.getLogger().setLevel(log_level.upper())

    if not check_port_available(host, port):
        click.echo(f"Port {port} is already in use on {host}", err=True)
        sys.exit(1)

    try:
        initialize_database(db_path)
    except Exception as e:
        click.echo(f"Failed to initialize database: {e}", err=True)
        sys.exit(1)

    print_startup_banner(host, port, db_path)
    logger.info(f"Serving on {host}:{port} with database {db_path}")
    uvicorn.run(create_app(db_path), host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    main()

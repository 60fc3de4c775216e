"""Executable entrypoint for the stratbacktest FastAPI server."""

from __future__ import annotations

import argparse
import os
import socket

from stratbacktest.core.utils.env import env_int


def _parse_args() -> argparse.Namespace:
    """Parse host, port and log level for the API server."""
    parser = argparse.ArgumentParser(description="Run the stratbacktest API server.")
    parser.add_argument(
        "--host",
        default=os.getenv("STRATBACKTEST_API_HOST", "127.0.0.1"),
        help="Bind host (default: 127.0.0.1 or STRATBACKTEST_API_HOST).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=env_int("API_PORT", 8000, minimum=1, maximum=65535),
        help="Bind port (default: 8000 or STRATBACKTEST_API_PORT).",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("STRATBACKTEST_API_LOG_LEVEL", "info"),
        help="Uvicorn log level (default: info or STRATBACKTEST_API_LOG_LEVEL).",
    )
    args = parser.parse_args()
    if args.port < 1 or args.port > 65535:
        parser.error("--port must be between 1 and 65535.")
    return args


def _is_port_available(host: str, port: int) -> bool:
    """Return True if this process can bind the host and port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def _resolve_port(host: str, requested_port: int, max_attempts: int = 50) -> int:
    """Return the first bindable port scanning forward from ``requested_port``."""
    max_candidate = min(65535, requested_port + max_attempts - 1)
    for candidate in range(requested_port, max_candidate + 1):
        if _is_port_available(host, candidate):
            return candidate
    raise RuntimeError(f"No available port found from {requested_port} to {max_candidate}.")


def main() -> None:
    """Run the API server under uvicorn on the first free port."""
    import uvicorn

    args = _parse_args()
    resolved_port = _resolve_port(args.host, args.port)
    if resolved_port != args.port:
        print(
            f"Requested port {args.port} is in use, starting StratBacktest API on {resolved_port} instead.",
            flush=True,
        )
    uvicorn.run(
        "stratbacktest.api.app:create_app",
        factory=True,
        host=args.host,
        port=resolved_port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()

"""Executable entrypoint for the SignalLab FastAPI server."""

from __future__ import annotations

import argparse
import os
import socket

DEFAULT_PORT = 8030


def _env_port(name: str = "SIGNALLAB_API_PORT") -> int:
    """Return the API port from the environment, validated."""
    raw_value = os.getenv(name, str(DEFAULT_PORT))
    try:
        port = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"Invalid {name} value: {raw_value}") from exc
    if not 1 <= port <= 65535:
        raise ValueError(f"{name} must be between 1 and 65535.")
    return port


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse server runtime settings; environment variables provide defaults."""
    parser = argparse.ArgumentParser(description="Run the SignalLab API server.")
    parser.add_argument("--host", default=os.getenv("SIGNALLAB_API_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=_env_port())
    parser.add_argument("--log-level", default=os.getenv("SIGNALLAB_API_LOG_LEVEL", "info"))
    parser.add_argument(
        "--data-dir",
        default=os.getenv("SIGNALLAB_DATA_DIR", "data"),
        help="Parquet data directory served by /backtests.",
    )
    args = parser.parse_args(argv)
    if not 1 <= args.port <= 65535:
        parser.error("--port must be between 1 and 65535.")
    return args


def _is_port_available(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def _resolve_port(host: str, requested_port: int, max_attempts: int = 50) -> int:
    """Return the first bindable port at or after ``requested_port``."""
    last_candidate = min(65535, requested_port + max_attempts - 1)
    for candidate in range(requested_port, last_candidate + 1):
        if _is_port_available(host, candidate):
            return candidate
    raise RuntimeError(f"No available port found from {requested_port} to {last_candidate}.")


def main(argv: list[str] | None = None) -> None:
    """Run the SignalLab API server."""
    import uvicorn

    args = _parse_args(argv)
    os.environ["SIGNALLAB_DATA_DIR"] = str(args.data_dir)
    port = _resolve_port(args.host, args.port)
    if port != args.port:
        print(f"Port {args.port} is in use, starting SignalLab API on {port}.", flush=True)
    uvicorn.run(
        "signallab.api.app:create_app",
        factory=True,
        host=args.host,
        port=port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()

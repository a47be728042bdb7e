import logging
import os
import socket
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from netforge.config import ConfigError


logger = logging.getLogger(__name__)


def bind_tcp(port: int, host: str = "0.0.0.0") -> socket.socket:
    if not 0 < port < 65536:
        raise ConfigError(f"Invalid port {port}: must be between 1 and 65535")
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise ConfigError(f"Cannot listen on {host}:{port}: {e.strerror or e}") from e
    return sock


def bind_unix(path: str) -> socket.socket:
    """Bind a unix socket, replacing a stale socket file left behind by a crash."""
    target = Path(path)
    if target.exists() and not target.is_socket():
        raise ConfigError(f"Cannot listen on unix://{path}: path exists and is not a socket")
    remove_socket(path)
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(path)
        os.chmod(path, 0o660)
    except OSError as e:
        sock.close()
        raise ConfigError(f"Cannot listen on unix://{path}: {e.strerror or e}") from e
    return sock


def remove_socket(path: str) -> None:
    target = Path(path)
    if target.is_socket():
        target.unlink()


def serve(app: FastAPI, port: int, unix_socket: str | None = None) -> None:
    """Serve the app on a TCP port and, optionally, a unix socket until signalled.

    uvicorn handles SIGINT/SIGTERM and drains in-flight requests before
    returning.
    """
    sockets = [bind_tcp(port)]
    logger.info("Listening on http://0.0.0.0:%d", port)
    if unix_socket:
        try:
            sockets.append(bind_unix(unix_socket))
        except ConfigError:
            sockets[0].close()
            raise
        logger.info("Listening on unix://%s", unix_socket)

    config = uvicorn.Config(app, log_config=None, timeout_graceful_shutdown=5)
    server = uvicorn.Server(config)
    try:
        server.run(sockets=sockets)
    finally:
        for sock in sockets:
            sock.close()
        if unix_socket:
            remove_socket(unix_socket)
        logger.info("Daemon shut down")

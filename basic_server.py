#!/usr/bin/env python3
"""
Minimal single-threaded web server.

Serves one fixed HTML page to every request, one connection at a time. The
port comes from the PORT environment variable (default 4567).
"""

import logging
import os
import socket
import sys
import time

from http_request import RequestError, read_request
from responses import render_response
from server import ServerError, setup_logging

DEFAULT_PORT = 4567
READ_TIMEOUT = 30.0

PAGE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Document Title</title>
</head>
<body>
    My Web Site
</body>
</html>
"""

logger = logging.getLogger("SessionServer.basic")


def get_port() -> int:
    """Return the port from the PORT environment variable, or DEFAULT_PORT."""
    value = os.environ.get("PORT")
    if value is None:
        return DEFAULT_PORT
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid PORT value {value!r}, using default {DEFAULT_PORT}")
        return DEFAULT_PORT


def page_response() -> dict:
    body = PAGE.encode("utf-8")
    return {
        "status_code": 200,
        "status_text": "OK",
        "headers": {
            "Content-Type": "text/html; charset=utf-8",
            "Content-Length": str(len(body)),
            "Connection": "close",
        },
        "body": body,
    }


class BasicHTTPServer:
    def __init__(self, host: str = "0.0.0.0", port: int = DEFAULT_PORT, read_timeout: float = READ_TIMEOUT):
        self.host = host
        self.port = port
        self.read_timeout = read_timeout
        self.server_socket = None
        self.running = False

    def bind(self):
        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self.server_socket.bind((self.host, self.port))
            self.server_socket.listen(5)
        except OSError as e:
            logger.error(f"Could not listen on port {self.port}: {e}")
            self.server_socket.close()
            self.server_socket = None
            raise ServerError(f"Could not listen on port {self.port}: {e}") from e
        self.port = self.server_socket.getsockname()[1]
        logger.info(f"Server started on port {self.port}")

    def serve_forever(self):
        server_socket = self.server_socket
        self.running = True
        while self.running:
            logger.info("Ready to receive ...")
            try:
                client_socket, client_address = server_socket.accept()
            except OSError as e:
                if not self.running:
                    break
                logger.error(f"Error accepting connection: {e}")
                time.sleep(0.1)
                continue
            self.handle_connection(client_socket, client_address)

    def handle_connection(self, client_socket: socket.socket, client_address):
        try:
            client_socket.settimeout(self.read_timeout)
            read_request(client_socket)
            client_socket.sendall(render_response(page_response()))
        except (OSError, RequestError) as e:
            logger.error(f"Error serving {client_address[0]}:{client_address[1]}: {e}")
        finally:
            client_socket.close()

    def stop(self):
        self.running = False
        server_socket, self.server_socket = self.server_socket, None
        if server_socket:
            try:
                server_socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            server_socket.close()


def main():
    setup_logging()
    server = BasicHTTPServer(port=get_port())
    try:
        server.bind()
    except ServerError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        sys.exit(1)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    finally:
        server.stop()


if __name__ == "__main__":
    main()

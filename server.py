#!/usr/bin/env python3
"""
Concurrent HTTP Session Server Using Socket Programming

A small HTTP/1.1 server built directly on stream sockets:
- Fixed-size worker thread pool fed by a connection queue
- Cookie based session tracking (session-id)
- Welcome page for GET requests, upload confirmation for POST /upload
- Console and file logging

Every response closes the connection.
"""

import logging
import os
import queue
import signal
import socket
import sys
import threading
import time
from typing import Optional, Tuple

from http_request import DRAIN_TIMEOUT, RequestError, is_upload, read_request
from responses import build_home_response, build_upload_response, new_upload_name, render_response
from sessions import SessionStore, get_session_id

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 35000
DEFAULT_MAX_THREADS = 10
READ_TIMEOUT = 30.0
LISTEN_BACKLOG = 128
LOG_FILE = os.path.join("logs", "server.log")


class ServerError(Exception):
    """Raised when the server cannot start listening."""


def setup_logging(log_file: Optional[str] = LOG_FILE, level: int = logging.INFO) -> logging.Logger:
    """
    Configure console and file logging for the server loggers.

    Args:
        log_file: Path of the log file, or None to log to the console only
        level: Logging level for all handlers

    Returns:
        The configured "SessionServer" logger
    """
    logger = logging.getLogger("SessionServer")
    if logger.handlers:
        return logger

    log_format = "%(asctime)s [%(levelname)s] [%(threadName)s] %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(log_format, date_format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    # Prevent duplicate logs
    logger.propagate = False
    return logger


class SessionHTTPServer:
    """
    Multi-threaded HTTP server with a fixed worker pool and in-memory sessions.

    The accept loop only queues connections; workers each own one connection
    from read to close.
    """

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 max_threads: int = DEFAULT_MAX_THREADS, read_timeout: float = READ_TIMEOUT,
                 drain_timeout: float = DRAIN_TIMEOUT, sessions: Optional[SessionStore] = None):
        """
        Initialize the server with configuration parameters.

        Args:
            host: Address to bind (default: 0.0.0.0)
            port: Port to bind, 0 picks a free port (default: 35000)
            max_threads: Number of worker threads (default: 10)
            read_timeout: Per-connection read deadline in seconds
            drain_timeout: Idle time that ends an upload body without Content-Length
            sessions: Session store shared by the workers
        """
        self.host = host
        self.port = port
        self.max_threads = max_threads
        self.read_timeout = read_timeout
        self.drain_timeout = drain_timeout
        self.sessions = sessions if sessions is not None else SessionStore()
        self.server_socket = None
        self.running = False
        self.thread_pool = []
        self.connection_queue = queue.Queue()
        self.stats_lock = threading.Lock()
        self.ready = threading.Event()

        self.total_requests = 0
        self.total_connections = 0

        self.logger = logging.getLogger("SessionServer")
        self.logger.info(f"Session server initialized: {host}:{port}, max_threads={max_threads}")

    def _signal_handler(self, signum, frame):
        self.logger.info(f"Received signal {signum}, stopping server")
        self.stop()

    def install_signal_handlers(self):
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def bind(self):
        """Create the listening socket, raising ServerError if the port is unavailable."""
        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self.server_socket.bind((self.host, self.port))
            self.server_socket.listen(LISTEN_BACKLOG)
        except OSError as e:
            self.logger.error(f"Could not listen on {self.host}:{self.port}: {e}")
            self.server_socket.close()
            self.server_socket = None
            raise ServerError(f"Could not listen on {self.host}:{self.port}: {e}") from e
        self.port = self.server_socket.getsockname()[1]

    def start(self):
        """Bind unless already bound, start the worker pool and run the accept loop until stopped."""
        if self.server_socket is None:
            self.bind()
        self.running = True
        self.logger.info(f"Server ready to receive connections on {self.host}:{self.port}")
        self.logger.info(f"Thread pool size: {self.max_threads}")

        for i in range(self.max_threads):
            thread = threading.Thread(target=self._worker_thread, name=f"Worker-{i+1}")
            thread.daemon = True
            thread.start()
            self.thread_pool.append(thread)

        self.ready.set()
        try:
            self._accept_loop()
        finally:
            self.stop()

    def _accept_loop(self):
        server_socket = self.server_socket
        while self.running:
            try:
                client_socket, client_address = server_socket.accept()
            except OSError as e:
                if not self.running:
                    break
                # A failed accept only affects that connection; keep serving.
                self.logger.error(f"Error accepting connection: {e}")
                time.sleep(0.1)
                continue

            self.logger.info(f"Incoming connection from {client_address[0]}:{client_address[1]}")
            with self.stats_lock:
                self.total_connections += 1

            self.connection_queue.put((client_socket, client_address))
            self.logger.debug(f"Connection queued for processing. Queue size: {self.connection_queue.qsize()}")

    def _worker_thread(self):
        """Worker thread that processes connections from the queue."""
        thread_name = threading.current_thread().name

        while self.running:
            try:
                client_socket, client_address = self.connection_queue.get(timeout=1.0)
            except queue.Empty:
                continue

            try:
                self.handle_connection(client_socket, client_address)
            except Exception:
                self.logger.exception(f"[{thread_name}] Unexpected error handling {client_address[0]}:{client_address[1]}")
            finally:
                self.connection_queue.task_done()

    def handle_connection(self, client_socket: socket.socket, client_address: Tuple[str, int]):
        """
        Serve a single request on client_socket and close it.

        I/O failures are logged and end the connection; the client gets a
        truncated or no response.

        Args:
            client_socket: Accepted client socket
            client_address: Client address tuple (host, port)
        """
        connection_id = f"{client_address[0]}:{client_address[1]}"
        self.logger.debug(f"[{connection_id}] ACCEPTED")

        try:
            client_socket.settimeout(self.read_timeout)

            request = read_request(client_socket, self.drain_timeout)
            if request is None:
                self.logger.info(f"Connection closed by client before sending a request: {connection_id}")
                return
            self.logger.debug(f"[{connection_id}] HEADERS_READ")

            session_id = get_session_id(request["lines"])
            session, created = self.sessions.get_or_create(session_id)
            if created and session_id is not None:
                self.logger.info(f"Unknown session id {session_id!r} from {connection_id}, issued a new one")
            self.logger.debug(f"[{connection_id}] SESSION_RESOLVED {session.name}")

            if is_upload(request["method"], request["path"]):
                response = build_upload_response(session, request["body"] or b"", new_upload_name())
            else:
                response = build_home_response(session)
            self.logger.debug(f"[{connection_id}] RESPONSE_BUILT")

            client_socket.sendall(render_response(response))
            self.logger.debug(f"[{connection_id}] SENT")

            with self.stats_lock:
                self.total_requests += 1

        except socket.timeout:
            self.logger.warning(f"Connection timeout for {connection_id}")
        except RequestError as e:
            self.logger.warning(f"Invalid request from {connection_id}: {e}")
        except OSError as e:
            self.logger.error(f"I/O error on connection {connection_id}: {e}")
        finally:
            try:
                client_socket.close()
            except OSError as e:
                self.logger.error(f"Error closing connection {connection_id}: {e}")
            self.logger.debug(f"[{connection_id}] CLOSED")

    def stop(self):
        """Stop accepting connections. In-flight requests are not drained."""
        self.running = False
        server_socket, self.server_socket = self.server_socket, None

        if server_socket:
            self.logger.info("Stopping session server...")
            try:
                # Wakes a thread blocked in accept()
                server_socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            server_socket.close()

            with self.stats_lock:
                self.logger.info(f"Server stopped. Total requests: {self.total_requests}, Total connections: {self.total_connections}")


def main(argv=None):
    """
    Main entry point for the session server.

    Usage: server.py [port] [host] [max_threads]
    """
    argv = sys.argv[1:] if argv is None else argv

    host = DEFAULT_HOST
    port = DEFAULT_PORT
    max_threads = DEFAULT_MAX_THREADS

    if len(argv) >= 1:
        try:
            port = int(argv[0])
        except ValueError:
            print("Error: Port must be an integer")
            sys.exit(1)

    if len(argv) >= 2:
        host = argv[1]

    if len(argv) >= 3:
        try:
            max_threads = int(argv[2])
        except ValueError:
            print("Error: Max threads must be an integer")
            sys.exit(1)

    if not (1 <= port <= 65535):
        print("Error: Port must be between 1 and 65535")
        sys.exit(1)

    if max_threads < 1:
        print("Error: Max threads must be at least 1")
        sys.exit(1)

    setup_logging()
    server = SessionHTTPServer(host, port, max_threads)
    server.install_signal_handlers()
    try:
        server.start()
    except ServerError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Line-oriented HTTP request reader.

This is a deliberately small reader, not a general HTTP parser: it reads the
request line and headers up to the blank-line terminator and, for uploads
only, whatever body follows. Everything else about the request is left on the
socket.
"""

import logging
import socket
from typing import Dict, List, Optional

MAX_LINE_BYTES = 8192
MAX_BODY_BYTES = 10 * 1024 * 1024
DRAIN_TIMEOUT = 0.5
UPLOAD_PATH = "/upload"

logger = logging.getLogger("SessionServer.request")


class RequestError(Exception):
    """Raised when a request cannot be read and the connection must be dropped."""


def is_upload(method: str, path: str) -> bool:
    return method == "POST" and path.split("?", 1)[0] == UPLOAD_PATH


def read_request(conn: socket.socket, drain_timeout: float = DRAIN_TIMEOUT) -> Optional[Dict]:
    """
    Read one request off a client connection.

    Lines are read until an empty line or the end of the stream. Each line
    may hold up to MAX_LINE_BYTES bytes, not counting its terminator. A body is
    only read for POST /upload requests whose headers were terminated.

    Args:
        conn: Connected client socket
        drain_timeout: Seconds to wait for more body bytes when the request
            carries no Content-Length

    Returns:
        Parsed request dictionary, or None if the client sent nothing
    """
    rfile = conn.makefile("rb")
    try:
        lines: List[str] = []
        received_any = False
        complete = False

        while True:
            raw = rfile.readline(MAX_LINE_BYTES + 2)
            if not raw:
                break
            received_any = True
            if len(raw.rstrip(b"\r\n")) > MAX_LINE_BYTES:
                raise RequestError(f"Request line exceeds {MAX_LINE_BYTES} bytes")

            line = raw.decode("iso-8859-1").rstrip("\r\n")
            logger.info(f"Received: {line}")
            if line == "":
                complete = True
                break
            lines.append(line)

        if not received_any:
            return None

        request_line = lines[0] if lines else ""
        parts = request_line.split()
        method = parts[0] if len(parts) > 0 else ""
        path = parts[1] if len(parts) > 1 else ""
        version = parts[2] if len(parts) > 2 else ""

        header_lines = lines[1:]
        headers = {}
        for line in header_lines:
            if ":" in line:
                key, value = line.split(":", 1)
                headers[key.strip().lower()] = value.strip()

        body = None
        if complete and is_upload(method, path):
            body = _read_body(conn, rfile, _content_length(headers), drain_timeout)

        return {
            "method": method,
            "path": path,
            "version": version,
            "lines": header_lines,
            "headers": headers,
            "body": body,
            "complete": complete,
        }
    finally:
        rfile.close()


def _content_length(headers: Dict[str, str]) -> Optional[int]:
    value = headers.get("content-length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid Content-Length: {value!r}")
        return None
    if length < 0:
        logger.warning(f"Ignoring negative Content-Length: {length}")
        return None
    if length > MAX_BODY_BYTES:
        raise RequestError(f"Body of {length} bytes exceeds {MAX_BODY_BYTES} bytes")
    return length


def _read_body(conn: socket.socket, rfile, content_length: Optional[int], drain_timeout: float) -> bytes:
    """Read the upload body, bounded by Content-Length when the client sent one."""
    if content_length is not None:
        body = rfile.read(content_length)
        if len(body) < content_length:
            logger.warning(f"Body truncated: expected {content_length} bytes, got {len(body)}")
        return body

    chunks = []
    total = 0
    previous_timeout = conn.gettimeout()
    conn.settimeout(drain_timeout)
    try:
        while True:
            chunk = rfile.read1(4096)
            if not chunk:
                break
            total += len(chunk)
            if total > MAX_BODY_BYTES:
                raise RequestError(f"Body exceeds {MAX_BODY_BYTES} bytes")
            chunks.append(chunk)
    except socket.timeout:
        # Nothing more arrived within drain_timeout: end of current input.
        pass
    finally:
        conn.settimeout(previous_timeout)
    return b"".join(chunks)

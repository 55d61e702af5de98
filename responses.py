"""
HTML responses served by the session server.

Responses are plain dictionaries with status_code, status_text, headers and
body keys; render_response turns one into the bytes written to the socket.
"""

import datetime
import html
import logging
import uuid
from typing import Dict

from sessions import SESSION_COOKIE_NAME, Session

logger = logging.getLogger("SessionServer.responses")


def new_upload_name() -> str:
    return f"{uuid.uuid4()}.txt"


def build_home_response(session: Session) -> Dict:
    """
    Build the welcome page for a session.

    Args:
        session: Resolved or newly created session

    Returns:
        Response dictionary
    """
    content = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Session Example</title>
</head>
<body>
    <h1>Session Example</h1>
    <p>Welcome, {html.escape(session.name)}!</p>
    <form action="/upload" method="post" enctype="text/plain">
        <textarea name="content" rows="8" cols="60"></textarea>
        <br>
        <input type="submit" value="Upload">
    </form>
</body>
</html>
"""
    return _html_response(content, session)


def build_upload_response(session: Session, body: bytes, file_name: str) -> Dict:
    """
    Build the upload confirmation page.

    The uploaded content is echoed back, escaped, so an upload containing
    markup is shown as text.

    Args:
        session: Resolved or newly created session
        body: Raw uploaded bytes, may be empty
        file_name: Name generated for the upload

    Returns:
        Response dictionary
    """
    text = body.decode("utf-8", errors="replace")
    # Persisting uploads is out of scope; the save is only recorded in the log.
    logger.info(f"Saved upload {file_name} ({len(body)} bytes) for {session.name}")

    content = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Upload Complete</title>
</head>
<body>
    <h1>Upload Complete</h1>
    <p>File name: {html.escape(file_name)}</p>
    <p>File content:</p>
    <pre>{html.escape(text)}</pre>
    <a href="/">Back</a>
</body>
</html>
"""
    return _html_response(content, session)


def _html_response(content: str, session: Session) -> Dict:
    body = content.encode("utf-8")
    return {
        "status_code": 200,
        "status_text": "OK",
        "headers": {
            "Content-Type": "text/html; charset=utf-8",
            "Content-Length": str(len(body)),
            "Set-Cookie": f"{SESSION_COOKIE_NAME}={session.session_id}; HttpOnly; Path=/",
            "Connection": "close",
        },
        "body": body,
    }


def render_response(response: Dict) -> bytes:
    """Serialize a response dictionary into raw HTTP/1.1 bytes."""
    status_line = f"HTTP/1.1 {response['status_code']} {response['status_text']}\r\n"
    date_header = f"Date: {datetime.datetime.now(datetime.timezone.utc).strftime('%a, %d %b %Y %H:%M:%S GMT')}\r\n"

    headers = ""
    for key, value in response["headers"].items():
        headers += f"{key}: {value}\r\n"

    head = status_line + date_header + headers + "\r\n"
    return head.encode("iso-8859-1") + response.get("body", b"")

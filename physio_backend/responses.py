"""JSON envelope shared by every endpoint"""

from typing import Any, Optional


def success(message: str, data: Optional[Any] = None, **extra) -> dict:
    body = {"status": "success", "message": message}
    body.update(extra)
    if data is not None:
        body["data"] = data
    return body


def failure(status_code: int, message: str, **extra) -> dict:
    """4xx responses are a client 'fail', everything else an 'error'"""
    body = {"status": "fail" if 400 <= status_code < 500 else "error", "message": message}
    body.update(extra)
    return body

"""
Response Envelope - every endpoint answers {success, message, data?}
"""
from typing import Any


def _envelope(success: bool, message: str, data: Any) -> dict:
    body = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    return body


def ok(data: Any = None, message: str = "OK") -> dict:
    """Build a success envelope"""
    return _envelope(True, message, data)


def fail(message: str, data: Any = None) -> dict:
    """Build a failure envelope"""
    return _envelope(False, message, data)

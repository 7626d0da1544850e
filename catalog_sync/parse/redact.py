"""Mask credentials, tokens and session cookies in logs and error payloads."""
import re
from typing import Any, Dict

MASK = "[REDACTED]"

# Dict keys whose values are always masked (compared lower-cased)
SECRET_KEYS = frozenset(
    {
        "access_token",
        "client_secret",
        "authorization",
        "auth_token",
        "x-mstr-authtoken",
        "session_cookies",
        "cookie",
        "password",
        "pf.pass",
    }
)

_VALUE = r'["\']?\s*[:=]\s*["\']?([^"\'&\s,}]+)'

_PATTERNS = [
    (re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), f"Bearer {MASK}"),
    (re.compile(r"access_token" + _VALUE, re.IGNORECASE), f"access_token={MASK}"),
    (re.compile(r"client_secret" + _VALUE, re.IGNORECASE), f"client_secret={MASK}"),
    (re.compile(r"x-mstr-authtoken" + _VALUE, re.IGNORECASE), f"x-mstr-authtoken={MASK}"),
    (re.compile(r"pf\.pass=([^&\s]+)", re.IGNORECASE), f"pf.pass={MASK}"),
    (re.compile(r'identityToken["\']?\s*:\s*["\']([^"\']+)["\']', re.IGNORECASE), f'identityToken:"{MASK}"'),
    (re.compile(r"(JSESSIONID|mstrSessionCORS|connect\.sid)=([^;,\s]+)", re.IGNORECASE), rf"\1={MASK}"),
]


def redact_string(text: str) -> str:
    """Mask every known secret pattern in a string."""
    if not text:
        return text
    for pattern, replacement in _PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def redact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a dict with secret keys masked and nested values redacted."""
    if not isinstance(data, dict):
        return data
    return {
        key: MASK if isinstance(key, str) and key.lower() in SECRET_KEYS else redact_json(value)
        for key, value in data.items()
    }


def redact_json(data: Any) -> Any:
    """Redact any JSON-serializable value."""
    if isinstance(data, dict):
        return redact_dict(data)
    if isinstance(data, list):
        return [redact_json(item) for item in data]
    if isinstance(data, str):
        return redact_string(data)
    return data

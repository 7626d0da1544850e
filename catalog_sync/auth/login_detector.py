"""Pure helpers for the reporting portal login chain."""
import re
import logging
from typing import Iterable, Optional

from selectolax.parser import HTMLParser

from catalog_sync.config import config

logger = logging.getLogger(__name__)

RESUME_PATTERN = re.compile(r"/as/([^/\"'\s]+)/resume/as/authorization\.ping")
FAIL_LOCATION = "/reporting/fail"


def extract_resume_url(html: str | None) -> Optional[str]:
    """
    Credential POST target from the identity provider login page.
    Prefers the login form's action; falls back to scanning the raw HTML.
    Returns None when the page carries no resume nonce.
    """
    if not html:
        return None

    candidates = []
    parser = HTMLParser(html)
    for form in parser.css("form[action]"):
        candidates.append(form.attributes.get("action") or "")
    candidates.append(html)

    for candidate in candidates:
        match = RESUME_PATTERN.search(candidate)
        if match:
            return f"{config.AUTH_BASE_URL}/as/{match.group(1)}/resume/as/authorization.ping"

    logger.debug("No resume nonce found in login page")
    return None


def token_from_location(location: str | None) -> Optional[str]:
    """
    Reporting identity token carried by the final redirect's query string.
    None for a missing Location, the failure redirect or an empty value.
    """
    if not location or location.rstrip("/").endswith(FAIL_LOCATION):
        return None
    if "=" not in location:
        return None

    token = location.split("=")[1]
    if "&" in token:
        token = token.split("&")[0]
    return token or None


def cookie_pairs(set_cookie_values: Iterable[str]) -> dict[str, str]:
    """name -> value from raw Set-Cookie headers, attributes dropped, last wins."""
    pairs: dict[str, str] = {}
    for header in set_cookie_values:
        first = header.split(";", 1)[0].strip()
        if "=" not in first:
            continue
        name, value = first.split("=", 1)
        if name:
            pairs[name.strip()] = value.strip()
    return pairs


def cookie_header(pairs: dict[str, str]) -> str:
    """Cookie request header value for a name -> value mapping."""
    return "; ".join(f"{name}={value}" for name, value in pairs.items())


def session_cookie_header(set_cookie_values: Iterable[str]) -> str:
    """Cookie header replaying every cookie the delegate call set."""
    return cookie_header(cookie_pairs(set_cookie_values))

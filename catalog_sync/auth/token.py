"""Vendor client-credentials token exchange."""
import logging

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from catalog_sync.config import config
from catalog_sync.errors import TokenExchangeError
from catalog_sync.fetch.endpoints import token_url

logger = logging.getLogger(__name__)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
    reraise=True,
)
async def fetch_access_token(http: httpx.AsyncClient, client_id: str, client_secret: str) -> str:
    """Exchange a client id/secret pair for a bearer token."""
    response = await http.post(
        token_url(),
        data={
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "client_credentials",
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        follow_redirects=False,
        timeout=config.TIMEOUT,
    )
    if response.status_code != 200:
        logger.error(f"Token exchange failed for client {client_id[:6]}...: {response.status_code}")
        raise TokenExchangeError(f"Token endpoint returned {response.status_code}")

    try:
        token = response.json().get("access_token")
    except ValueError as e:
        raise TokenExchangeError(f"Token endpoint returned invalid JSON: {e}") from e
    if not token:
        raise TokenExchangeError("Token endpoint response has no access_token")
    return token

"""Reporting portal session via redirect and cookie replay."""
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from catalog_sync.auth.login_detector import (
    cookie_header,
    cookie_pairs,
    extract_resume_url,
    session_cookie_header,
    token_from_location,
)
from catalog_sync.config import config
from catalog_sync.errors import PortalLoginError

logger = logging.getLogger(__name__)


@dataclass
class PortalSession:
    """Credentials for report downloads."""

    session_cookies: str = field(repr=False)
    auth_token: str = field(repr=False)


class CookieJar:
    """Named cookie trail; each hop decides which trail it replays."""

    def __init__(self):
        self.pairs: dict[str, str] = {}

    def absorb(self, response: httpx.Response) -> None:
        self.pairs.update(cookie_pairs(response.headers.get_list("set-cookie")))

    def replace(self, response: httpx.Response) -> None:
        self.pairs = cookie_pairs(response.headers.get_list("set-cookie"))

    def drop(self, name: str) -> None:
        self.pairs.pop(name, None)

    def header(self) -> str:
        return cookie_header(self.pairs)


class PortalSessionManager:
    """Logs into the supplier portal and exchanges the result for a report session.

    Redirects are never followed automatically: every hop reads the Location
    header and forwards only the cookies that hop needs.
    """

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.http = http
        self.username = username or config.PORTAL_USERNAME
        self.password = password or config.PORTAL_PASSWORD
        self._session: Optional[PortalSession] = None

    async def _hop(
        self, client: httpx.AsyncClient, method: str, url: str, jar: CookieJar, **kwargs
    ) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if jar.pairs:
            headers["cookie"] = jar.header()
        logger.debug(f"[PORTAL] {method} {url.split('?')[0]}")
        response = await client.request(
            method, url, headers=headers, follow_redirects=False, timeout=config.TIMEOUT, **kwargs
        )
        # The trails are the only cookie source, never the client jar
        client.cookies.clear()
        return response

    @staticmethod
    def _location(response: httpx.Response, step: str) -> str:
        location = response.headers.get("location")
        if not location:
            raise PortalLoginError(f"No Location header at step '{step}' (status {response.status_code})")
        return str(response.url.join(location))

    async def _portal_cookies(self, client: httpx.AsyncClient) -> tuple[CookieJar, CookieJar]:
        """Identity provider login and supplier callbacks; returns (supplier, authorization) trails."""
        supplier = CookieJar()
        auth = CookieJar()
        api = CookieJar()
        base = config.SUPPLIER_BASE_URL.rstrip("/")

        landing = await self._hop(client, "GET", f"{base}/", supplier)
        supplier.replace(landing)
        oauth_url = self._location(landing, "landing")

        login_page = await self._hop(client, "GET", oauth_url, supplier)
        auth.replace(login_page)
        resume_url = extract_resume_url(login_page.text)
        if not resume_url:
            raise PortalLoginError("Login page carries no resume URL")

        credentials = await self._hop(
            client,
            "POST",
            resume_url,
            auth,
            data={
                "pf.username": self.username or "",
                "pf.pass": self.password or "",
                "pf.ok": "clicked",
                "pf.adapterId": "authform",
            },
        )
        supplier.absorb(credentials)
        auth.absorb(credentials)
        supplier_auth_url = self._location(credentials, "credentials")

        supplier_auth = await self._hop(client, "GET", supplier_auth_url, supplier)
        supplier.replace(supplier_auth)
        supplier_session_url = self._location(supplier_auth, "supplier auth")

        await self._hop(client, "GET", supplier_session_url, supplier)

        supplier_login = await self._hop(client, "GET", f"{base}/login", supplier)
        supplier_login_url = self._location(supplier_login, "supplier login")

        api_oauth = await self._hop(client, "GET", supplier_login_url, supplier)
        api.replace(api_oauth)
        api_redirect_url = self._location(api_oauth, "api oauth")

        api_redirect = await self._hop(client, "GET", api_redirect_url, auth)
        auth.absorb(api_redirect)
        api_code_url = self._location(api_redirect, "api redirect")

        api_code = await self._hop(client, "GET", api_code_url, api)
        callback_url = self._location(api_code, "api code")

        callback = await self._hop(client, "GET", callback_url, supplier)
        supplier.absorb(callback)
        return supplier, auth

    async def _reporting_token(
        self, client: httpx.AsyncClient, supplier: CookieJar, auth: CookieJar
    ) -> str:
        base = config.SUPPLIER_BASE_URL.rstrip("/")

        reporting = await self._hop(client, "GET", f"{base}/reporting", supplier)
        supplier.drop("connect.sid")
        supplier.absorb(reporting)

        reporting_login = await self._hop(client, "GET", f"{base}/reporting/login", supplier)
        challenge_url = self._location(reporting_login, "reporting login")

        challenge = await self._hop(client, "GET", challenge_url, auth)
        token_url = self._location(challenge, "code challenge")

        token_response = await self._hop(client, "GET", token_url, supplier)
        token = None
        if token_response.status_code == 302:
            token = token_from_location(token_response.headers.get("location"))
        if not token:
            raise PortalLoginError(f"Reporting token refused (status {token_response.status_code})")
        return token

    async def _delegate(self, client: httpx.AsyncClient, token: str) -> PortalSession:
        response = await client.post(
            f"{config.MSTR_BASE_URL}/api/auth/delegate",
            json={"loginMode": -1, "identityToken": token},
            follow_redirects=False,
            timeout=config.TIMEOUT,
        )
        auth_token = response.headers.get("x-mstr-authtoken")
        cookies = session_cookie_header(response.headers.get_list("set-cookie"))
        if not auth_token or not cookies:
            raise PortalLoginError(f"Delegate session exchange failed (status {response.status_code})")
        return PortalSession(session_cookies=cookies, auth_token=auth_token)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((PortalLoginError, httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def login(self) -> PortalSession:
        """Run the full login chain and cache the resulting session."""
        if not self.username or not self.password:
            raise ValueError("PORTAL_USERNAME/PORTAL_PASSWORD must be provided")

        logger.info(f"[PORTAL] Logging in as {self.username}...")
        owns_client = self.http is None
        client = self.http or httpx.AsyncClient(timeout=config.TIMEOUT)
        try:
            supplier, auth = await self._portal_cookies(client)
            token = await self._reporting_token(client, supplier, auth)
            self._session = await self._delegate(client, token)
        finally:
            if owns_client:
                await client.aclose()

        logger.info("[PORTAL] Login successful - report session obtained")
        return self._session

    async def ensure_session(self) -> PortalSession:
        """Cached session, logging in when there is none."""
        if self._session is None:
            return await self.login()
        return self._session

    def invalidate(self) -> None:
        self._session = None

    def is_authenticated(self) -> bool:
        return self._session is not None

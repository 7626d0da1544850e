"""CSV report downloads from the reporting portal."""
import logging
from typing import NamedTuple, Optional

import httpx

from catalog_sync.auth.portal_session import PortalSession, PortalSessionManager
from catalog_sync.config import config
from catalog_sync.errors import PortalSessionExpired

logger = logging.getLogger(__name__)


class ReportDocument(NamedTuple):
    document_id: str
    visualization_id: str


REPORT_DOCUMENTS: dict[str, ReportDocument] = {
    "inventory": ReportDocument("206EF18843BBEE37A42BDFB6522F908B", "W59DF347374C0424A8755FA262F82AA87"),
    "sales": ReportDocument("D3B8AC6A4623434AC54CE080D69088A5", "WE94053832E16401AA38932E4A34B67AD"),
    "fees": ReportDocument("D3F9F015467D80E7F22E62A4E7BE46CD", "WAE3C08969CC64D58885A38E54E8F6FCB"),
    "billing": ReportDocument("D7947E2742187FF15E09CFA2ED15C336", "W377C0B43D32145D7AB5D515D7776F7D1"),
}

INSTANCE_BODY = {
    "filters": [],
    "vizAppearances": [],
    "persistViewState": True,
    "resolveOnly": False,
}


def report_filename(document: str) -> str:
    return f"digikey_{document}_report.csv"


def _session_headers(session: PortalSession, project_id: Optional[str]) -> dict[str, str]:
    return {
        "x-mstr-authtoken": session.auth_token,
        "x-mstr-projectid": project_id or config.PORTAL_PROJECT_ID or "",
        "cookie": session.session_cookies,
    }


async def fetch_report_csv(
    http: httpx.AsyncClient,
    session: PortalSession,
    document: str,
    project_id: Optional[str] = None,
) -> bytes:
    """Create a report instance and download its CSV export.

    Raises ValueError for an unknown document and PortalSessionExpired on 401.
    """
    report = REPORT_DOCUMENTS.get(document)
    if report is None:
        raise ValueError(f"Unknown report document: {document}")

    instances_url = f"{config.MSTR_BASE_URL}/api/documents/{report.document_id}/instances/"
    headers = _session_headers(session, project_id)

    instance = await http.post(instances_url, json=INSTANCE_BODY, headers=headers, timeout=config.TIMEOUT)
    if instance.status_code == 401:
        raise PortalSessionExpired("Session expired!")
    instance.raise_for_status()
    mid = instance.json().get("mid")
    if not mid:
        raise httpx.HTTPStatusError(
            "Report instance response has no mid", request=instance.request, response=instance
        )

    response = await http.post(
        f"{instances_url}{mid}/visualizations/{report.visualization_id}/csv",
        headers={**headers, "Prefer": "respond-async"},
        timeout=config.TIMEOUT,
    )
    if response.status_code == 401:
        raise PortalSessionExpired("Session expired!")
    response.raise_for_status()

    logger.info(f"[PORTAL] Downloaded {document} report ({len(response.content)} bytes)")
    return response.content


async def download_report(
    http: httpx.AsyncClient, manager: PortalSessionManager, document: str
) -> bytes:
    """fetch_report_csv with one fresh login when the cached session expired."""
    session = await manager.ensure_session()
    try:
        return await fetch_report_csv(http, session, document)
    except PortalSessionExpired:
        logger.warning("[PORTAL] Session expired, logging in again")
        manager.invalidate()
        session = await manager.login()
        return await fetch_report_csv(http, session, document)

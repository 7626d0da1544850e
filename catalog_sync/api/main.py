"""FastAPI main application."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, BackgroundTasks, Depends, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from catalog_sync.auth.portal_session import PortalSessionManager
from catalog_sync.config import config, Config
from catalog_sync.fetch.reports import REPORT_DOCUMENTS, download_report, report_filename
from catalog_sync.jobs.runner import SyncRunner
from catalog_sync.logging_conf import setup_logging
from catalog_sync.parse.redact import redact_json, redact_string
from catalog_sync.store.state import StateDB

logger = logging.getLogger(__name__)

app = FastAPI(title="Catalog Sync API", version="0.1.0")

# Bearer token security
BEARER = HTTPBearer(auto_error=False)


def verify_api_key(credentials: Optional[HTTPAuthorizationCredentials] = Depends(BEARER)) -> bool:
    """401 without a bearer token, 403 when it does not match API_KEY."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    if not config.API_KEY or credentials.credentials != config.API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return True


# Components are created on first use so importing the app has no side effects
_state_db: Optional[StateDB] = None
_portal: Optional[PortalSessionManager] = None


def get_state_db() -> StateDB:
    global _state_db
    if _state_db is None:
        _state_db = StateDB()
    return _state_db


def get_portal() -> PortalSessionManager:
    global _portal
    if _portal is None:
        _portal = PortalSessionManager()
    return _portal


def get_runner_factory():
    return SyncRunner


class SyncRequest(BaseModel):
    """Request model for a sync run."""
    start_offset: Optional[int] = None
    total: Optional[int] = None
    dry_run: bool = False


class SyncAccepted(BaseModel):
    run_id: str
    status: str = "started"


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    setup_logging()
    await get_state_db().initialize()


@app.get("/health")
async def health():
    """Health check endpoint (no auth required)."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def _run_sync(runner: SyncRunner) -> None:
    """Background sync; failures are already recorded in the run ledger."""
    try:
        await runner.run()
    except Exception as e:
        logger.error(f"Background sync {runner.run_id} failed: {redact_string(str(e))}")


@app.post("/sync", status_code=202, response_model=SyncAccepted)
async def start_sync(
    background_tasks: BackgroundTasks,
    request: Optional[SyncRequest] = None,
    _: bool = Depends(verify_api_key),
    state_db: StateDB = Depends(get_state_db),
    runner_factory=Depends(get_runner_factory),
):
    """Start a sync in the background and return its run id immediately."""
    request = request or SyncRequest()
    run_id = uuid.uuid4().hex[:12]
    runner = runner_factory(
        start_offset=request.start_offset,
        total=request.total,
        dry_run=request.dry_run,
        state_db=state_db,
        run_id=run_id,
    )
    background_tasks.add_task(_run_sync, runner)
    logger.info(f"Sync {run_id} scheduled")
    return SyncAccepted(run_id=run_id)


@app.post("/sync/wait")
async def sync_and_wait(
    request: Optional[SyncRequest] = None,
    _: bool = Depends(verify_api_key),
    state_db: StateDB = Depends(get_state_db),
    runner_factory=Depends(get_runner_factory),
):
    """Run a sync to completion and return its summary."""
    request = request or SyncRequest()
    runner = runner_factory(
        start_offset=request.start_offset,
        total=request.total,
        dry_run=request.dry_run,
        state_db=state_db,
    )
    try:
        return await runner.run()
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=redact_json({"error": type(e).__name__, "message": f"Sync failed: {e}"}),
        )


@app.get("/runs/latest")
async def latest_run(
    _: bool = Depends(verify_api_key),
    state_db: StateDB = Depends(get_state_db),
):
    """Most recent run from the ledger."""
    run = await state_db.latest_run()
    if run is None:
        raise HTTPException(status_code=404, detail="No sync run recorded")
    return run


@app.get("/runs/stats")
async def run_stats(
    _: bool = Depends(verify_api_key),
    state_db: StateDB = Depends(get_state_db),
):
    """Run count per status."""
    return await state_db.get_stats()


@app.get("/csv/{document}")
async def get_csv(
    document: str,
    _: bool = Depends(verify_api_key),
    portal: PortalSessionManager = Depends(get_portal),
):
    """Download one reporting portal CSV export."""
    if document not in REPORT_DOCUMENTS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown document '{document}', expected one of {sorted(REPORT_DOCUMENTS)}",
        )

    try:
        async with httpx.AsyncClient(timeout=config.TIMEOUT) as http:
            content = await download_report(http, portal, document)
    except Exception as e:
        logger.error(f"[PORTAL] Report {document} failed: {redact_string(str(e))}")
        raise HTTPException(status_code=500, detail=f"Report download failed: {type(e).__name__}")

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{report_filename(document)}"'},
    )


if __name__ == "__main__":
    import uvicorn
    Config.validate(require_portal=True)
    uvicorn.run(app, host="0.0.0.0", port=8000)

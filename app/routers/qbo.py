"""
qbo.py — QuickBooks Online connection & sync routes

Business Rules:
- Connect redirects to Intuit with state = base64 {companyId}
- Callback always ends in a redirect to the settings tab, with
  qbo_success=true or a coarse qbo_error code (the provider's own error,
  missing_params, token_exchange_failed, callback_failed)
- Sync errors come back as the standard error envelope with the status
  carried by the domain exception (400 not connected, 401 expired, ...)

Called by: main.py (router mount)
Depends on: services/qbo_oauth.py, services/qbo_sync.py, dependencies
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.quickbooks import QuickBooksClient
from ..database import get_db
from ..dependencies import get_qbo_client
from ..exceptions import RemoteFetchError
from ..schemas.qbo import SyncRequest
from ..services import qbo_oauth, qbo_sync

log = logging.getLogger("vantage.qbo")

router = APIRouter(prefix="/api/qbo", tags=["qbo"])


@router.get("/connect")
async def qbo_connect(companyId: str = ""):
    if not settings.qbo_client_id:
        raise HTTPException(500, "QBO_CLIENT_ID not configured")
    if not companyId:
        raise HTTPException(400, "companyId is required")
    return RedirectResponse(qbo_oauth.build_authorize_url(settings, companyId), status_code=302)


@router.get("/callback")
async def qbo_callback(
    code: str = "",
    state: str = "",
    realmId: str = "",
    error: str = "",
    db: Session = Depends(get_db),
    qbo: QuickBooksClient = Depends(get_qbo_client),
):
    def _back(**flags):
        return RedirectResponse(qbo_oauth.settings_redirect_url(settings, **flags), status_code=302)

    if error:
        return _back(qbo_error=error)
    if not code or not state or not realmId:
        return _back(qbo_error="missing_params")

    try:
        company_id = qbo_oauth.decode_state(state)
        try:
            tokens = await qbo.exchange_code(code)
        except RemoteFetchError as e:
            log.error(f"QBO token exchange failed: {e}")
            return _back(qbo_error="token_exchange_failed")
        qbo_oauth.save_connection(db, company_id, realmId, tokens)
    except Exception:
        log.exception("QBO callback failed")
        db.rollback()
        return _back(qbo_error="callback_failed")

    return _back(qbo_success="true")


@router.post("/sync")
async def qbo_sync_now(
    payload: SyncRequest,
    db: Session = Depends(get_db),
    qbo: QuickBooksClient = Depends(get_qbo_client),
):
    """Run a sync now; domain errors propagate to main.py's handler."""
    result = await qbo_sync.run_sync(db, payload.company_id, payload.scope, qbo)
    return {
        "success": True,
        "results": {
            "bankTransactions": result["bank_transactions"],
            "invoices": result["invoices"],
        },
        "incomplete": result["incomplete"],
        "syncedAt": result["synced_at"],
    }


@router.get("/sync")
async def qbo_sync_status(companyId: str = "", db: Session = Depends(get_db)):
    if not companyId:
        raise HTTPException(400, "companyId is required")
    return qbo_sync.get_sync_status(db, companyId)

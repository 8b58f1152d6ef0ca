"""
qbo_oauth.py — QuickBooks OAuth2 connect/callback helpers.

Business Rules:
- state is base64(JSON {"companyId": ...}); it is the only link between
  the authorize redirect and the callback
- Access and refresh tokens are encrypted with the Token Vault before they
  touch the database
- One credential row per company; reconnecting overwrites it

Called by: routers/qbo.py
Depends on: services/token_vault.py, models (CompanySettings)
"""

import base64
import binascii
import json
import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from ..config import Settings
from ..models import CompanySettings
from .token_vault import encrypt_token

log = logging.getLogger("vantage.qbo")


def encode_state(company_id: str) -> str:
    return base64.b64encode(json.dumps({"companyId": company_id}).encode()).decode()


def decode_state(state: str) -> str:
    """Recover the company id from an OAuth state value. Raises ValueError."""
    try:
        data = json.loads(base64.b64decode(state, validate=True))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"undecodable OAuth state: {e}") from e
    company_id = data.get("companyId") if isinstance(data, dict) else None
    if not company_id:
        raise ValueError("OAuth state has no companyId")
    return str(company_id)


def build_authorize_url(settings: Settings, company_id: str) -> str:
    params = {
        "client_id": settings.qbo_client_id,
        "response_type": "code",
        "scope": settings.qbo_scope,
        "redirect_uri": settings.oauth_redirect_uri,
        "state": encode_state(company_id),
    }
    return f"{settings.qbo_auth_url}?{urlencode(params)}"


def settings_redirect_url(settings: Settings, **flags) -> str:
    return f"{settings.frontend_url.rstrip('/')}/?{urlencode({'tab': 'settings', **flags})}"


def save_connection(
    db: Session, company_id: str, realm_id: str, tokens: dict, now: datetime | None = None
) -> CompanySettings:
    """Encrypt tokens and upsert the company's credential record."""
    now = now or datetime.now(timezone.utc)
    access = encrypt_token(tokens["access_token"])
    refresh = encrypt_token(tokens["refresh_token"]) if tokens.get("refresh_token") else None
    expires_in = int(tokens.get("expires_in") or 3600)

    cs = db.query(CompanySettings).filter_by(company_id=company_id).first()
    if cs is None:
        cs = CompanySettings(company_id=company_id)
        db.add(cs)
    cs.qbo_realm_id = realm_id
    cs.qbo_access_token = access
    cs.qbo_refresh_token = refresh
    cs.qbo_token_expires_at = now + timedelta(seconds=expires_in)
    cs.qbo_connected_at = now
    db.commit()
    log.info(f"QuickBooks connected for company {company_id} (realm {realm_id})")
    return cs

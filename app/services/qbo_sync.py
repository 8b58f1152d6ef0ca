"""
qbo_sync.py — QuickBooks → internal ledgers synchronizer.

Pulls bank-affecting entities into the cash ledger (transactions) and
invoices into the accrual ledger plus the AR invoice view, one company per
call.

Flow: loading_credentials → token_valid_check → syncing_bank /
syncing_invoices → summarizing.

Business Rules:
- No credential row, no access token or no realm → NotConnectedError
- Expired (or missing) token expiry → TokenExpiredError; no inline refresh,
  the user reconnects through OAuth
- Bank kinds sync in a fixed order: Purchase, Deposit, Transfer, Payment,
  SalesReceipt; each kind's pages are fetched sequentially
- Every write is an upsert on (company_id, external id), so re-running a
  sync updates rows instead of duplicating them
- One record's mapping or write failure counts as an error and the loop
  continues; the accrual row and its invoice view row commit together or
  not at all
- Records without a QBO Id cannot be keyed and are counted as skipped
- Only precondition failures and total QBO unavailability raise

Called by: routers/qbo.py
Depends on: connectors/quickbooks.py, services/qbo_mapper.py,
            services/token_vault.py, models (CompanySettings, ledgers)
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.quickbooks import PageResult, QBOCredentials, QuickBooksClient
from ..exceptions import (
    NotConnectedError,
    RemoteFetchError,
    RowWriteError,
    TokenExpiredError,
)
from ..models import AccrualTransaction, CompanySettings, Invoice, Transaction
from .qbo_mapper import BANK_ENTITY_PREFIXES, BANK_MAPPERS, map_invoice
from .token_vault import decrypt_token

log = logging.getLogger("vantage.sync")

SCOPES = ("bank", "invoices", "all")


def _counter() -> dict:
    return {"synced": 0, "skipped": 0, "errors": 0}


# ── Credentials ───────────────────────────────────────────────────────


def load_credentials(db: Session, company_id: str, now: datetime) -> QBOCredentials:
    """Return decrypted QBO credentials or raise why the company can't sync."""
    cs = db.query(CompanySettings).filter_by(company_id=company_id).first()
    if not cs or not cs.qbo_access_token:
        raise NotConnectedError("QuickBooks not connected")
    if not cs.qbo_realm_id:
        raise NotConnectedError("Missing QuickBooks realm ID")

    expires = cs.qbo_token_expires_at
    if expires is not None and expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    if expires is None or expires <= now:
        raise TokenExpiredError("QuickBooks token expired, reconnect QuickBooks")

    # IntegrityError from a tampered token propagates
    return QBOCredentials(realm_id=cs.qbo_realm_id, access_token=decrypt_token(cs.qbo_access_token))


# ── Upserts ───────────────────────────────────────────────────────────


def _upsert(db: Session, model, key_column: str, company_id: str, row: dict, synced_at: datetime):
    key = row[key_column]
    obj = (
        db.query(model)
        .filter(model.company_id == company_id, getattr(model, key_column) == key)
        .one_or_none()
    )
    if obj is None:
        obj = model(company_id=company_id)
        db.add(obj)
    for column, value in row.items():
        setattr(obj, column, value)
    obj.synced_at = synced_at
    db.flush()
    return obj


def _write_cash_row(db: Session, company_id: str, row: dict, synced_at: datetime) -> None:
    try:
        with db.begin_nested():
            _upsert(db, Transaction, "qbo_transaction_id", company_id, row, synced_at)
    except SQLAlchemyError as e:
        raise RowWriteError(f"{row.get('qbo_transaction_id')}: {e}") from e


def _write_invoice_rows(
    db: Session, company_id: str, accrual: dict, invoice: dict, synced_at: datetime
) -> None:
    try:
        with db.begin_nested():
            _upsert(db, AccrualTransaction, "qbo_invoice_id", company_id, accrual, synced_at)
            _upsert(db, Invoice, "qbo_invoice_id", company_id, invoice, synced_at)
    except SQLAlchemyError as e:
        raise RowWriteError(f"invoice {accrual.get('qbo_invoice_id')}: {e}") from e


# ── Per-ledger loops ──────────────────────────────────────────────────


def _query(entity: str) -> str:
    return f"SELECT * FROM {entity} WHERE TxnDate >= '{settings.qbo_sync_since}'"


async def _sync_bank(db, client, creds, company_id, synced_at, fetches):
    totals = _counter()
    by_kind = {}
    for kind in BANK_ENTITY_PREFIXES:
        counts = _counter()
        page = await client.fetch_pages(creds, _query(kind), kind)
        fetches[kind] = page
        mapper = BANK_MAPPERS[kind]
        for record in page.records:
            if not record.get("Id"):
                counts["skipped"] += 1
                continue
            try:
                _write_cash_row(db, company_id, mapper(record), synced_at)
                counts["synced"] += 1
            except Exception as e:
                counts["errors"] += 1
                log.warning(f"QBO {kind} {record.get('Id')} not synced for {company_id}: {e}")
        db.commit()
        by_kind[kind] = counts
        for k in totals:
            totals[k] += counts[k]
    totals["by_kind"] = by_kind
    return totals


async def _sync_invoices(db, client, creds, company_id, synced_at, fetches):
    counts = _counter()
    page = await client.fetch_pages(creds, _query("Invoice"), "Invoice")
    fetches["Invoice"] = page
    today = synced_at.date()
    for record in page.records:
        if not record.get("Id"):
            counts["skipped"] += 1
            continue
        try:
            accrual, invoice = map_invoice(record, today)
            _write_invoice_rows(db, company_id, accrual, invoice, synced_at)
            counts["synced"] += 1
        except Exception as e:
            counts["errors"] += 1
            log.warning(f"QBO Invoice {record.get('Id')} not synced for {company_id}: {e}")
    db.commit()
    return counts


# ── Orchestrator ──────────────────────────────────────────────────────


async def run_sync(
    db: Session,
    company_id: str,
    scope: str,
    client: QuickBooksClient,
    now: datetime | None = None,
) -> dict:
    """Sync one company's QBO data. Returns per-ledger counters."""
    if scope not in SCOPES:
        raise ValueError(f"scope must be one of {', '.join(SCOPES)}")
    now = now or datetime.now(timezone.utc)

    log.info(f"sync {company_id}: loading_credentials")
    creds = load_credentials(db, company_id, now)
    log.info(f"sync {company_id}: token valid, scope={scope}")

    result = {
        "bank_transactions": {**_counter(), "by_kind": {}},
        "invoices": _counter(),
        "incomplete": [],
    }
    fetches: dict[str, PageResult] = {}

    if scope in ("bank", "all"):
        log.info(f"sync {company_id}: syncing_bank")
        result["bank_transactions"] = await _sync_bank(db, client, creds, company_id, now, fetches)
    if scope in ("invoices", "all"):
        log.info(f"sync {company_id}: syncing_invoices")
        result["invoices"] = await _sync_invoices(db, client, creds, company_id, now, fetches)

    if fetches and all(not p.complete and p.pages == 0 for p in fetches.values()):
        first_error = next(iter(fetches.values())).error
        raise RemoteFetchError(f"QuickBooks unavailable: {first_error}")

    result["incomplete"] = [kind for kind, p in fetches.items() if not p.complete]
    result["synced_at"] = now.isoformat()
    log.info(
        f"sync {company_id}: summarizing: bank {result['bank_transactions']['synced']} "
        f"synced/{result['bank_transactions']['errors']} errors, invoices "
        f"{result['invoices']['synced']} synced/{result['invoices']['errors']} errors, "
        f"incomplete={result['incomplete']}"
    )
    return result


# ── Status ────────────────────────────────────────────────────────────


def get_sync_status(db: Session, company_id: str) -> dict:
    """Connection state plus per-ledger row counts and last sync time."""
    cs = db.query(CompanySettings).filter_by(company_id=company_id).first()

    def _ledger(model) -> dict:
        count, last = (
            db.query(func.count(model.id), func.max(model.synced_at))
            .filter(model.company_id == company_id, model.sync_source == "qbo")
            .one()
        )
        if isinstance(last, datetime) and last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return {"count": count or 0, "last_synced_at": last.isoformat() if last else None}

    return {
        "connected": bool(cs and cs.is_connected),
        "realm_id": cs.qbo_realm_id if cs else None,
        "connected_at": cs.qbo_connected_at.isoformat() if cs and cs.qbo_connected_at else None,
        "token_expires_at": (
            cs.qbo_token_expires_at.isoformat() if cs and cs.qbo_token_expires_at else None
        ),
        "bank_transactions": _ledger(Transaction),
        "invoices": _ledger(Invoice),
    }

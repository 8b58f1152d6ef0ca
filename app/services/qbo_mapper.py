"""
qbo_mapper.py — QuickBooks entity → internal ledger row mapping.

Pure functions, one per QBO entity kind. Each takes one raw record from the
QBO query API and returns a complete row dict (every column present, with
defaults for anything missing). No I/O, no database access.

Business Rules:
- Sign: Purchase and Transfer are outflows (negative); Deposit, Payment and
  SalesReceipt are inflows (positive); invoice totals are positive revenue
- Default category comes from the entity kind only (Purchase/Transfer → opex,
  everything else → revenue); no deeper inference here
- "Client:Project" customer labels split on the first colon only
- Invoice status bands are checked in a fixed order so a record never
  matches two bands: paid → no due date → overdue → today → soon → pending

Called by: services/qbo_sync.py
Depends on: utils (safe_float)
"""

from dataclasses import dataclass
from datetime import date, datetime

from ..utils import safe_float

SYNC_SOURCE = "qbo"

# Bank-affecting kinds in the order they are synced: (QBO entity, id prefix)
BANK_ENTITY_PREFIXES = {
    "Purchase": "PUR",
    "Deposit": "DEP",
    "Transfer": "TRF",
    "Payment": "PMT",
    "SalesReceipt": "SR",
}


@dataclass(frozen=True)
class InvoiceStatus:
    status: str
    detail: str = ""
    days_overdue: int = 0


# ── Field helpers ──────────────────────────────────────────────────────


def _ref_name(record: dict, key: str) -> str:
    ref = record.get(key) or {}
    return (ref.get("name") or "").strip() if isinstance(ref, dict) else ""


def _parse_date(value) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _amount(record: dict, key: str = "TotalAmt") -> float:
    return abs(safe_float(record.get(key)) or 0.0)


def _lines(record: dict) -> list[dict]:
    lines = record.get("Line") or []
    return [ln for ln in lines if isinstance(ln, dict)]


def _first_line_description(record: dict) -> str:
    for line in _lines(record):
        desc = (line.get("Description") or "").strip()
        if desc:
            return desc
    return ""


def _describe(record: dict, kind: str) -> str:
    return (
        (record.get("PrivateNote") or "").strip()
        or _first_line_description(record)
        or (record.get("DocNumber") or "").strip()
        or f"QBO {kind} {record.get('Id', '')}".strip()
    )


def _cash_row(record: dict, kind: str, **fields) -> dict:
    row = {
        "qbo_transaction_id": f"{BANK_ENTITY_PREFIXES[kind]}-{record.get('Id', '')}",
        "date": _parse_date(record.get("TxnDate")),
        "description": _describe(record, kind),
        "amount": 0.0,
        "payee": "",
        "qbo_category": "",
        "category": "revenue",
        "movement_type": "income",
        "account_name": "",
        "sync_source": SYNC_SOURCE,
    }
    row.update(fields)
    return row


# ── Cash ledger mappers ────────────────────────────────────────────────


def map_purchase(record: dict) -> dict:
    qbo_category = ""
    for line in _lines(record):
        detail = line.get("AccountBasedExpenseLineDetail") or {}
        qbo_category = _ref_name(detail, "AccountRef")
        if qbo_category:
            break
    return _cash_row(
        record,
        "Purchase",
        amount=-_amount(record),
        payee=_ref_name(record, "EntityRef"),
        qbo_category=qbo_category,
        category="opex",
        movement_type="expense",
        account_name=_ref_name(record, "AccountRef"),
    )


def map_deposit(record: dict) -> dict:
    payee, qbo_category = "", ""
    for line in _lines(record):
        detail = line.get("DepositLineDetail") or {}
        payee = payee or _ref_name(detail, "Entity")
        qbo_category = qbo_category or _ref_name(detail, "AccountRef")
    return _cash_row(
        record,
        "Deposit",
        amount=_amount(record),
        payee=payee,
        qbo_category=qbo_category,
        account_name=_ref_name(record, "DepositToAccountRef"),
    )


def map_transfer(record: dict) -> dict:
    source = _ref_name(record, "FromAccountRef")
    target = _ref_name(record, "ToAccountRef")
    return _cash_row(
        record,
        "Transfer",
        amount=-_amount(record, "Amount"),
        payee=f"{source} → {target}" if source or target else "",
        category="opex",
        movement_type="transfer",
        account_name=source,
    )


def map_payment(record: dict) -> dict:
    return _cash_row(
        record,
        "Payment",
        amount=_amount(record),
        payee=_ref_name(record, "CustomerRef"),
        account_name=_ref_name(record, "DepositToAccountRef"),
    )


def map_sales_receipt(record: dict) -> dict:
    return _cash_row(
        record,
        "SalesReceipt",
        amount=_amount(record),
        payee=_ref_name(record, "CustomerRef"),
        account_name=_ref_name(record, "DepositToAccountRef"),
    )


BANK_MAPPERS = {
    "Purchase": map_purchase,
    "Deposit": map_deposit,
    "Transfer": map_transfer,
    "Payment": map_payment,
    "SalesReceipt": map_sales_receipt,
}


# ── Invoices ───────────────────────────────────────────────────────────


def parse_customer_project(label: str | None) -> tuple[str, str | None]:
    """Split a QBO "Client:Project" label on its first colon.

    >>> parse_customer_project("Acme:Phase 1:Retainer")
    ('Acme', 'Phase 1:Retainer')
    """
    if not label:
        return "", None
    client, sep, project = label.partition(":")
    project = project.strip() if sep else ""
    return client.strip(), project or None


def derive_invoice_status(balance: float, due_date: date | None, today: date) -> InvoiceStatus:
    """Status band for an invoice. Day counts use whole calendar days."""
    if round(balance or 0.0, 2) <= 0:
        return InvoiceStatus("paid", "Paid", 0)
    if due_date is None:
        return InvoiceStatus("pending")

    # date objects are already midnight-normalized
    days_past = (_parse_date(today) - _parse_date(due_date)).days
    if days_past > 0:
        return InvoiceStatus("overdue", f"Overdue {days_past} days", days_past)
    if days_past == 0:
        return InvoiceStatus("due_today", "Due today")

    days_left = -days_past
    if days_left == 1:
        return InvoiceStatus("due_soon", "Due tomorrow")
    if days_left <= 7:
        return InvoiceStatus("due_soon", f"Due in {days_left} days")
    return InvoiceStatus("pending", f"Due in {days_left} days")


def aging_bucket(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "current"
    if days_overdue <= 30:
        return "1_30"
    if days_overdue <= 60:
        return "31_60"
    if days_overdue <= 90:
        return "61_90"
    return "90_plus"


def map_invoice(record: dict, today: date) -> tuple[dict, dict]:
    """Map one QBO Invoice to (accrual ledger row, AR invoice view row)."""
    label = _ref_name(record, "CustomerRef")
    client, project = parse_customer_project(label)
    total = _amount(record)
    balance = safe_float(record.get("Balance")) or 0.0
    due = _parse_date(record.get("DueDate"))
    status = derive_invoice_status(balance, due, today)
    number = (record.get("DocNumber") or "").strip() or str(record.get("Id", ""))

    common = {
        "qbo_invoice_id": str(record.get("Id", "")),
        "invoice_number": number,
        "date": _parse_date(record.get("TxnDate")),
        "due_date": due,
        "customer_label": label,
        "client": client,
        "project": project,
        "amount": total,
        "balance": balance,
        "status": status.status,
        "status_detail": status.detail,
        "days_overdue": status.days_overdue,
        "sync_source": SYNC_SOURCE,
    }
    accrual = {
        **common,
        "description": f"Invoice #{number} - {client or 'Unknown Customer'}",
        "category": "revenue",
    }
    invoice = {
        **common,
        "amount_paid": round(total - balance, 2),
        "aging_bucket": aging_bucket(status.days_overdue),
    }
    return accrual, invoice

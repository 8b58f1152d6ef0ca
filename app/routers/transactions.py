"""
transactions.py — Cash ledger listing and manual categorization

Called by: main.py (router mount)
Depends on: models (Transaction), schemas/transactions.py
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Transaction
from ..schemas.transactions import TransactionUpdate
from ..services.transaction_search import UNCATEGORIZED_VALUES

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("")
async def list_transactions(
    companyId: str,
    category: str | None = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    """List a company's cash transactions, newest first.

    ``category=uncategorized`` selects rows with no usable category.
    """
    q = db.query(Transaction).filter(Transaction.company_id == companyId)
    if category == "uncategorized":
        q = q.filter(
            or_(Transaction.category.is_(None), func.lower(Transaction.category).in_(UNCATEGORIZED_VALUES))
        )
    elif category:
        q = q.filter(Transaction.category == category)
    total = q.count()
    limit = max(1, min(limit, 500))
    rows = q.order_by(Transaction.date.desc(), Transaction.id.desc()).offset(max(0, offset)).limit(limit).all()
    return {"total": total, "transactions": [t.to_dict() for t in rows]}


@router.patch("/{txn_id}")
async def update_transaction(txn_id: int, payload: TransactionUpdate, db: Session = Depends(get_db)):
    row = (
        db.query(Transaction)
        .filter(Transaction.id == txn_id, Transaction.company_id == payload.company_id)
        .first()
    )
    if not row:
        raise HTTPException(404, "Transaction not found")
    changes = payload.model_dump(exclude_none=True, exclude={"company_id"})
    for field, value in changes.items():
        setattr(row, field, value)
    db.commit()
    return row.to_dict()

"""Company settings — per-tenant QuickBooks credential record."""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text

from ..database import UTCDateTime
from .base import Base


class CompanySettings(Base):
    """QBO connection for one company.

    Token columns hold Token Vault ciphertext, never plaintext.
    """

    __tablename__ = "company_settings"
    id = Column(Integer, primary_key=True)
    company_id = Column(String(64), nullable=False, unique=True, index=True)
    qbo_realm_id = Column(String(64))
    qbo_access_token = Column(Text)
    qbo_refresh_token = Column(Text)
    qbo_token_expires_at = Column(UTCDateTime)
    qbo_connected_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_connected(self) -> bool:
        return bool(self.qbo_access_token and self.qbo_realm_id)

from __future__ import annotations

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from autoparts.app.core.database import Base


class DocumentSequence(Base):
    """One atomic counter per numbering scope.

    Global kinds use a fixed scope (``DEV``, ``PO``, ``COT``); daily kinds
    embed the business date in the scope (``INV251111``, ``RET-20251111``).
    """

    __tablename__ = "document_sequences"

    scope: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

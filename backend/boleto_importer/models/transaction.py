from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boleto_importer.database import Base

if TYPE_CHECKING:
    from boleto_importer.models.import_row import ImportRow


class Transaction(Base):
    """Document issued for one import row. Written once, never updated."""

    __tablename__ = "transactions"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    import_row_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("import_rows.id", ondelete="CASCADE"), unique=True
    )
    id_transaction: Mapped[str] = mapped_column(String(255), index=True)
    boleto_url: Mapped[str] = mapped_column(String(2048))
    boleto_code: Mapped[str] = mapped_column(String(255))
    pdf: Mapped[str] = mapped_column(Text)
    due_date: Mapped[str] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    import_row: Mapped[ImportRow] = relationship("ImportRow", back_populates="transaction")

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boleto_importer.database import Base

if TYPE_CHECKING:
    from boleto_importer.models.import_job import Import
    from boleto_importer.models.transaction import Transaction


class RowStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class ImportRow(Base):
    __tablename__ = "import_rows"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    import_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("imports.id", ondelete="CASCADE"), index=True
    )
    row_number: Mapped[int] = mapped_column(Integer)
    amount: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(255))
    document: Mapped[str] = mapped_column(String(14))
    phone: Mapped[str] = mapped_column(String(50), default="")
    email: Mapped[str] = mapped_column(String(255), default="")
    address: Mapped[str] = mapped_column(String(255), default="")
    number: Mapped[str] = mapped_column(String(50), default="")
    district: Mapped[str] = mapped_column(String(255), default="")
    state: Mapped[str] = mapped_column(String(2), default="")
    postal_code: Mapped[str] = mapped_column(String(8), default="")
    due_date: Mapped[str] = mapped_column(String(10))
    status: Mapped[RowStatus] = mapped_column(
        Enum(RowStatus, name="row_status_enum", create_constraint=False, values_callable=lambda e: [m.value for m in e]),
        default=RowStatus.PENDING,
        index=True,
    )
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    import_job: Mapped[Import] = relationship("Import", back_populates="rows")
    transaction: Mapped[Transaction | None] = relationship(
        "Transaction",
        back_populates="import_row",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

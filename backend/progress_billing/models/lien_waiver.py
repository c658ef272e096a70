"""
Modello SQLAlchemy per le Liberatorie (Lien Waiver)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from progress_billing.models import Base
from progress_billing.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from progress_billing.models.pay_application import PayApplication


class LienWaiver(Base, UUIDMixin, TimestampMixin):
    """
    Liberatoria associata a un SAL certificato o pagato.

    Record di audit in sola aggiunta: non viene mai modificato né
    cancellato singolarmente. Il documento firmato è un URL opaco.

    Attributes:
        id: UUID primary key, generato automaticamente
        pay_app_id: UUID del SAL
        waiver_type: conditional/unconditional, progress/final
        amount: Importo liberato (opzionale, >= 0)
        through_date: Data fino a cui vale la liberatoria
        received_date: Data di ricezione del documento
        file_url: URL del documento firmato
        notes: Note
        created_at: Data/ora di registrazione
    """

    __tablename__ = "lien_waivers"

    pay_app_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("pay_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="UUID del SAL",
    )

    waiver_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="Tipo liberatoria (conditional/unconditional, progress/final)",
    )

    amount: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        doc="Importo liberato",
    )

    through_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    file_url: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
        doc="URL del documento firmato",
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    pay_application: Mapped["PayApplication"] = relationship(
        "PayApplication",
        back_populates="lien_waivers",
        lazy="noload",
    )

    __table_args__ = (
        CheckConstraint(
            "waiver_type IN ('conditional_progress', 'unconditional_progress', "
            "'conditional_final', 'unconditional_final')",
            name="ck_lien_waivers_waiver_type",
        ),
        CheckConstraint("amount IS NULL OR amount >= 0", name="ck_lien_waivers_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<LienWaiver(id={self.id}, pay_app_id={self.pay_app_id}, type={self.waiver_type})>"

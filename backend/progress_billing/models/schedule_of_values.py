"""
Modello SQLAlchemy per il Computo Contrattuale (Schedule of Values)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Contiene:
- ScheduleOfValuesLineItem: voce del computo contrattuale di un progetto
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, List

from sqlalchemy import (
    CheckConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from progress_billing.models import Base
from progress_billing.models.mixins import TimestampMixin, UUIDMixin

# Import per type hinting relazioni (evita circular import)
if TYPE_CHECKING:
    from progress_billing.models.pay_application import PayAppLineItem


class ScheduleOfValuesLineItem(Base, UUIDMixin, TimestampMixin):
    """
    Voce del computo contrattuale (Schedule of Values, SOV).

    Ogni voce rappresenta un'unità di lavoro a prezzo concordato.
    La voce è referenziata (non posseduta) dalle righe dei SAL di tutti
    i periodi: deve sopravvivere a tutte le righe che la usano.

    Attributes:
        id: UUID primary key, generato automaticamente
        project_id: UUID del progetto (gestito da un sistema esterno)
        item_number: Numero voce, univoco nel progetto (es. "01", "03.2")
        description: Descrizione del lavoro
        scheduled_value: Importo contrattuale della voce (>= 0)
        retainage_pct: Percentuale di ritenuta a garanzia (0-100)
        sort_order: Ordine di visualizzazione e fatturazione
        created_at: Data/ora creazione record
        updated_at: Data/ora ultimo aggiornamento

    Relationships:
        pay_app_line_items: Righe dei SAL che referenziano la voce
    """

    __tablename__ = "sov_line_items"

    # ------------------------------------------------------------
    # Colonne Identificazione
    # ------------------------------------------------------------
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        doc="UUID del progetto a cui appartiene il computo",
    )

    item_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Numero voce, univoco all'interno del progetto",
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        doc="Descrizione del lavoro contrattualizzato",
    )

    # ------------------------------------------------------------
    # Colonne Importi
    # ------------------------------------------------------------
    scheduled_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Importo contrattuale della voce",
    )

    retainage_pct: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("10.00"),
        doc="Percentuale di ritenuta a garanzia (0-100)",
    )

    sort_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Ordine di visualizzazione e fatturazione",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    pay_app_line_items: Mapped[List["PayAppLineItem"]] = relationship(
        "PayAppLineItem",
        back_populates="sov_line_item",
        lazy="noload",
        passive_deletes="all",
        doc="Righe dei SAL che referenziano la voce",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        UniqueConstraint("project_id", "item_number", name="uq_sov_line_items_project_item_number"),
        # Indice composto per l'ordinamento del computo
        Index("ix_sov_line_items_project_sort", "project_id", "sort_order", "item_number"),
        CheckConstraint("scheduled_value >= 0", name="ck_sov_line_items_scheduled_value_positive"),
        CheckConstraint(
            "retainage_pct >= 0 AND retainage_pct <= 100",
            name="ck_sov_line_items_retainage_pct",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleOfValuesLineItem(id={self.id}, number={self.item_number}, "
            f"scheduled_value={self.scheduled_value})>"
        )

"""
Modelli SQLAlchemy per gli Stati di Avanzamento Lavori (SAL)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Contiene:
- PayApplication: SAL di un periodo di fatturazione (testata)
- PayAppLineItem: Righe del SAL, una per voce di computo
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, List

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
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
    from progress_billing.models.lien_waiver import LienWaiver
    from progress_billing.models.schedule_of_values import ScheduleOfValuesLineItem


class PayApplication(Base, UUIDMixin, TimestampMixin):
    """
    Modello per i SAL (Pay Application / Draw).

    Un SAL è la richiesta di pagamento di un periodo. Nasce in bozza con
    una riga per ogni voce del computo e avanza solo in avanti:
    draft → submitted → certified → paid.

    Attributes:
        id: UUID primary key, generato automaticamente
        project_id: UUID del progetto
        pay_app_number: Numero progressivo del SAL nel progetto
        period_from: Data inizio periodo
        period_to: Data fine periodo (>= period_from)
        status: Stato corrente (draft, submitted, certified, paid)
        contractor_name: Ragione sociale dell'appaltatore
        contract_number: Numero del contratto
        submitted_date: Data di invio
        certified_date: Data di certificazione
        certified_by: Identità di chi ha certificato il SAL
        notes: Note amministrative
        created_at: Data/ora creazione record
        updated_at: Data/ora ultimo aggiornamento

    Relationships:
        line_items: Righe del SAL (possedute, cancellazione a cascata)
        lien_waivers: Liberatorie registrate sul SAL
    """

    __tablename__ = "pay_applications"

    # ------------------------------------------------------------
    # Colonne Identificazione
    # ------------------------------------------------------------
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        doc="UUID del progetto",
    )

    pay_app_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Numero progressivo del SAL, univoco nel progetto",
    )

    period_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data inizio periodo di fatturazione",
    )

    period_to: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data fine periodo di fatturazione",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        doc="Stato: draft, submitted, certified, paid",
    )

    # ------------------------------------------------------------
    # Colonne Contratto
    # ------------------------------------------------------------
    contractor_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="Ragione sociale dell'appaltatore",
    )

    contract_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        doc="Numero del contratto",
    )

    # ------------------------------------------------------------
    # Colonne Workflow
    # ------------------------------------------------------------
    submitted_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        doc="Data di invio del SAL",
    )

    certified_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        doc="Data di certificazione del SAL",
    )

    certified_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="Identità del certificatore (fornita dal chiamante)",
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Note amministrative, modificabili anche dopo la certificazione",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    line_items: Mapped[List["PayAppLineItem"]] = relationship(
        "PayAppLineItem",
        back_populates="pay_application",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="PayAppLineItem.line_number",
        doc="Righe del SAL in ordine di computo",
    )

    lien_waivers: Mapped[List["LienWaiver"]] = relationship(
        "LienWaiver",
        back_populates="pay_application",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
        doc="Liberatorie registrate sul SAL",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        UniqueConstraint("project_id", "pay_app_number", name="uq_pay_applications_project_number"),
        # Indice per la ricerca dei periodi certificati del progetto
        Index("ix_pay_applications_project_status", "project_id", "status"),
        CheckConstraint(
            "status IN ('draft', 'submitted', 'certified', 'paid')",
            name="ck_pay_applications_status",
        ),
        CheckConstraint("period_from <= period_to", name="ck_pay_applications_period_order"),
        CheckConstraint("pay_app_number > 0", name="ck_pay_applications_number_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<PayApplication(id={self.id}, number={self.pay_app_number}, "
            f"status={self.status})>"
        )


class PayAppLineItem(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le righe del SAL.

    Una riga per ogni voce del computo. `work_completed_previous` è
    calcolato alla creazione del SAL dai periodi certificati o pagati
    e non è modificabile dall'utente.

    Attributes:
        id: UUID primary key, generato automaticamente
        pay_app_id: UUID del SAL padre
        sov_line_item_id: UUID della voce di computo
        line_number: Posizione della riga (ordine del computo)
        work_completed_previous: Lavori certificati nei periodi precedenti
        work_completed_this_period: Lavori eseguiti nel periodo
        materials_stored: Materiali in cantiere
        certified_this_period: Importo certificato (se diverso dall'eseguito)
        retainage_pct_override: Ritenuta del solo periodo (sostituisce quella della voce)
        created_at: Data/ora creazione record
        updated_at: Data/ora ultimo aggiornamento

    Relationships:
        pay_application: SAL padre
        sov_line_item: Voce di computo referenziata
    """

    __tablename__ = "pay_app_line_items"

    # ------------------------------------------------------------
    # Colonne Relazioni
    # ------------------------------------------------------------
    pay_app_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("pay_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="UUID del SAL padre",
    )

    sov_line_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("sov_line_items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        doc="UUID della voce di computo",
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Posizione della riga nel SAL",
    )

    # ------------------------------------------------------------
    # Colonne Importi
    # ------------------------------------------------------------
    work_completed_previous: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Lavori certificati nei periodi precedenti (calcolato)",
    )

    work_completed_this_period: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Lavori eseguiti nel periodo",
    )

    materials_stored: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Materiali in cantiere non ancora posati",
    )

    certified_this_period: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        doc="Importo certificato del periodo (NULL = uguale all'eseguito)",
    )

    retainage_pct_override: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        doc="Ritenuta del periodo (NULL = ritenuta della voce)",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    pay_application: Mapped["PayApplication"] = relationship(
        "PayApplication",
        back_populates="line_items",
        lazy="noload",
        doc="SAL padre",
    )

    sov_line_item: Mapped["ScheduleOfValuesLineItem"] = relationship(
        "ScheduleOfValuesLineItem",
        back_populates="pay_app_line_items",
        lazy="selectin",
        doc="Voce di computo referenziata",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        UniqueConstraint("pay_app_id", "sov_line_item_id", name="uq_pay_app_line_items_pay_app_sov"),
        CheckConstraint(
            "work_completed_previous >= 0",
            name="ck_pay_app_line_items_previous_positive",
        ),
        CheckConstraint(
            "work_completed_this_period >= 0",
            name="ck_pay_app_line_items_this_period_positive",
        ),
        CheckConstraint(
            "materials_stored >= 0",
            name="ck_pay_app_line_items_materials_positive",
        ),
        CheckConstraint(
            "certified_this_period IS NULL OR certified_this_period >= 0",
            name="ck_pay_app_line_items_certified_positive",
        ),
        CheckConstraint(
            "retainage_pct_override IS NULL OR "
            "(retainage_pct_override >= 0 AND retainage_pct_override <= 100)",
            name="ck_pay_app_line_items_retainage_override",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PayAppLineItem(id={self.id}, pay_app_id={self.pay_app_id}, "
            f"sov_line_item_id={self.sov_line_item_id})>"
        )

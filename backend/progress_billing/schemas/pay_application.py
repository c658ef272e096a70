"""
Schemas Pydantic per i SAL (Pay Application)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Contiene:
- Enum: PayAppStatus e transizioni ammesse
- Schemas per PayAppLineItem (righe, prospetto G703)
- Schemas per PayApplication (testata, prospetto G702)
- Schema di riepilogo fatturazione del progetto
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)

from progress_billing.core.exceptions import BusinessValidationError
from progress_billing.services.totals_engine import (
    LineProgress,
    OverbilledItem,
    PayAppLineItemView,
    PayAppTotals,
    compute_line_progress,
    compute_totals,
    find_overbilled_items,
)


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class PayAppStatus(str, Enum):
    """Stati del SAL, in ordine di avanzamento."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    CERTIFIED = "certified"
    PAID = "paid"


# Transizioni valide: solo in avanti, un passo alla volta
VALID_TRANSITIONS: dict[PayAppStatus, list[PayAppStatus]] = {
    PayAppStatus.DRAFT: [PayAppStatus.SUBMITTED],
    PayAppStatus.SUBMITTED: [PayAppStatus.CERTIFIED],
    PayAppStatus.CERTIFIED: [PayAppStatus.PAID],
    PayAppStatus.PAID: [],  # Stato finale
}

# Stati in cui le righe sono modificabili
EDITABLE_STATUSES: tuple[PayAppStatus, ...] = (PayAppStatus.DRAFT, PayAppStatus.SUBMITTED)

# Stati i cui importi alimentano i periodi successivi e ammettono liberatorie
CERTIFIED_STATUSES: tuple[PayAppStatus, ...] = (PayAppStatus.CERTIFIED, PayAppStatus.PAID)


# -------------------------------------------------------------------
# Funzioni di validazione standalone
# -------------------------------------------------------------------

def validate_period_order(
    period_from: Optional[datetime.date],
    period_to: Optional[datetime.date],
) -> None:
    """
    Valida l'ordine delle date del periodo.

    Raises:
        BusinessValidationError: Se period_from è successiva a period_to
    """
    if period_from is not None and period_to is not None and period_from > period_to:
        raise BusinessValidationError(
            "La data di inizio periodo non può essere successiva alla data di fine",
            extra={"period_from": period_from.isoformat(), "period_to": period_to.isoformat()},
        )


# -------------------------------------------------------------------
# Schemas per PayAppLineItem
# -------------------------------------------------------------------

class PayAppLineItemUpdate(BaseModel):
    """
    Schema per l'aggiornamento di una riga del SAL da parte del revisore.

    certified_this_period e retainage_pct_override accettano null
    esplicito per tornare al valore base.
    """

    work_completed_this_period: Optional[Decimal] = Field(None, ge=0, description="Lavori eseguiti nel periodo")
    materials_stored: Optional[Decimal] = Field(None, ge=0, description="Materiali in cantiere")
    certified_this_period: Optional[Decimal] = Field(
        None, ge=0, description="Importo certificato (null = uguale all'eseguito)"
    )
    retainage_pct_override: Optional[Decimal] = Field(
        None, ge=0, le=100, description="Ritenuta del periodo (null = ritenuta della voce)"
    )

    @model_validator(mode="after")
    def validate_required_amounts(self) -> "PayAppLineItemUpdate":
        """Eseguito e materiali non possono essere azzerati a null."""
        for field_name in ("work_completed_this_period", "materials_stored"):
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise BusinessValidationError(f"Il campo {field_name} non può essere nullo")
        return self


class PayAppLineItemRead(BaseModel):
    """
    Schema per la lettura di una riga del SAL (colonne G703).

    Include i dati della voce di computo e l'avanzamento calcolato.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    pay_app_id: uuid.UUID = Field(..., serialization_alias="payAppId")
    sov_line_item_id: uuid.UUID = Field(..., serialization_alias="sovLineItemId")
    line_number: int = Field(..., serialization_alias="lineNumber")
    item_number: str = Field(..., serialization_alias="itemNumber")
    description: str = ""
    scheduled_value: Decimal = Field(..., serialization_alias="scheduledValue")
    sov_retainage_pct: Decimal = Field(..., serialization_alias="sovRetainagePct")
    work_completed_previous: Decimal = Field(..., serialization_alias="workCompletedPrevious")
    work_completed_this_period: Decimal = Field(..., serialization_alias="workCompletedThisPeriod")
    materials_stored: Decimal = Field(..., serialization_alias="materialsStored")
    certified_this_period: Optional[Decimal] = Field(None, serialization_alias="certifiedThisPeriod")
    retainage_pct_override: Optional[Decimal] = Field(None, serialization_alias="retainagePctOverride")

    @model_validator(mode="before")
    @classmethod
    def flatten_sov_line_item(cls, data: Any) -> Any:
        """Unisce i campi della voce di computo a quelli della riga ORM."""
        sov_item = getattr(data, "sov_line_item", None)
        if sov_item is None:
            return data
        return {
            "id": data.id,
            "pay_app_id": data.pay_app_id,
            "sov_line_item_id": data.sov_line_item_id,
            "line_number": data.line_number,
            "item_number": sov_item.item_number,
            "description": sov_item.description,
            "scheduled_value": sov_item.scheduled_value,
            "sov_retainage_pct": sov_item.retainage_pct,
            "work_completed_previous": data.work_completed_previous,
            "work_completed_this_period": data.work_completed_this_period,
            "materials_stored": data.materials_stored,
            "certified_this_period": data.certified_this_period,
            "retainage_pct_override": data.retainage_pct_override,
        }

    def to_view(self) -> PayAppLineItemView:
        """Vista per il motore di calcolo."""
        return PayAppLineItemView(
            sov_line_item_id=self.sov_line_item_id,
            item_number=self.item_number,
            scheduled_value=self.scheduled_value,
            retainage_pct=self.sov_retainage_pct,
            work_completed_previous=self.work_completed_previous,
            work_completed_this_period=self.work_completed_this_period,
            materials_stored=self.materials_stored,
            certified_this_period=self.certified_this_period,
            retainage_pct_override=self.retainage_pct_override,
        )

    @computed_field
    @property
    def progress(self) -> LineProgress:
        """Avanzamento della riga: certificato, ritenuta, % e residuo."""
        return compute_line_progress(self.to_view())


# -------------------------------------------------------------------
# Schemas per PayApplication
# -------------------------------------------------------------------

class PayApplicationCreate(BaseModel):
    """
    Schema per la creazione di un SAL.

    Se pay_app_number è omesso il service assegna il successivo
    numero disponibile del progetto.
    """

    pay_app_number: Optional[int] = Field(None, ge=1, description="Numero SAL (default: prossimo)")
    period_from: datetime.date = Field(..., description="Data inizio periodo")
    period_to: datetime.date = Field(..., description="Data fine periodo")
    contractor_name: Optional[str] = Field(None, max_length=255)
    contract_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=5000)

    @model_validator(mode="after")
    def validate_period(self) -> "PayApplicationCreate":
        """Valida l'ordine delle date del periodo."""
        validate_period_order(self.period_from, self.period_to)
        return self


class PayApplicationUpdate(BaseModel):
    """
    Schema per l'aggiornamento della testata del SAL.

    Tutti i campi sono opzionali. Lo status NON può essere cambiato
    tramite questo schema (usare PayAppTransition).
    """

    period_from: Optional[datetime.date] = None
    period_to: Optional[datetime.date] = None
    contractor_name: Optional[str] = Field(None, max_length=255)
    contract_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=5000)

    @model_validator(mode="after")
    def validate_period(self) -> "PayApplicationUpdate":
        validate_period_order(self.period_from, self.period_to)
        return self


class PayAppTransition(BaseModel):
    """
    Schema per il cambio di stato di un SAL.

    certified_by (opzionale) viene registrato alla certificazione;
    effective_date (default: oggi) valorizza submitted_date o certified_date.
    """

    status: PayAppStatus = Field(..., description="Nuovo stato del SAL")
    certified_by: Optional[str] = Field(None, max_length=255, description="Identità del certificatore")
    effective_date: Optional[datetime.date] = Field(None, description="Data dell'evento (default: oggi)")


class PayApplicationRead(BaseModel):
    """
    Schema per la lettura di un SAL.

    Include le righe, i totali del periodo e le righe in eccesso
    rispetto all'importo contrattuale.
    """

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID = Field(..., serialization_alias="projectId")
    pay_app_number: int = Field(..., serialization_alias="payAppNumber")
    period_from: datetime.date = Field(..., serialization_alias="periodFrom")
    period_to: datetime.date = Field(..., serialization_alias="periodTo")
    status: PayAppStatus
    contractor_name: Optional[str] = Field(None, serialization_alias="contractorName")
    contract_number: Optional[str] = Field(None, serialization_alias="contractNumber")
    submitted_date: Optional[datetime.date] = Field(None, serialization_alias="submittedDate")
    certified_date: Optional[datetime.date] = Field(None, serialization_alias="certifiedDate")
    certified_by: Optional[str] = Field(None, serialization_alias="certifiedBy")
    notes: Optional[str] = None
    created_at: datetime.datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime.datetime = Field(..., serialization_alias="updatedAt")
    line_items: list[PayAppLineItemRead] = Field(default_factory=list, serialization_alias="lineItems")

    @computed_field
    @property
    def totals(self) -> PayAppTotals:
        """Totali del periodo (prospetto G702)."""
        return compute_totals(item.to_view() for item in self.line_items)

    @computed_field(alias="overbilledItems")
    @property
    def overbilled_items(self) -> list[OverbilledItem]:
        """Righe il cui eseguito a oggi supera l'importo contrattuale."""
        return find_overbilled_items(item.to_view() for item in self.line_items)


class NextPayAppNumber(BaseModel):
    """Prossimo numero SAL disponibile per il progetto."""

    project_id: uuid.UUID = Field(..., serialization_alias="projectId")
    next_number: int = Field(..., serialization_alias="nextNumber")


class ProjectBillingSummary(BaseModel):
    """
    Riepilogo della fatturazione di un progetto.

    Attributes:
        project_id: UUID del progetto
        total_pay_apps: Numero totale di SAL
        draft_count, submitted_count, certified_count, paid_count: SAL per stato
        certified_to_date: SAL certificati o pagati
        cumulative_certified: Certificato cumulato dei SAL certificati o pagati
        cumulative_retainage: Ritenute cumulate dei SAL certificati o pagati
        latest_pay_app_number: Ultimo numero SAL (None se nessuno)
    """

    project_id: uuid.UUID = Field(..., serialization_alias="projectId")
    total_pay_apps: int = Field(0, serialization_alias="totalPayApps")
    draft_count: int = Field(0, serialization_alias="draftCount")
    submitted_count: int = Field(0, serialization_alias="submittedCount")
    certified_count: int = Field(0, serialization_alias="certifiedCount")
    paid_count: int = Field(0, serialization_alias="paidCount")
    certified_to_date: int = Field(0, serialization_alias="certifiedToDate")
    cumulative_certified: Decimal = Field(Decimal("0.00"), serialization_alias="cumulativeCertified")
    cumulative_retainage: Decimal = Field(Decimal("0.00"), serialization_alias="cumulativeRetainage")
    latest_pay_app_number: Optional[int] = Field(None, serialization_alias="latestPayAppNumber")

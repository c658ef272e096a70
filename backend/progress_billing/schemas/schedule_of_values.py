"""
Schemas Pydantic per il Computo Contrattuale (Schedule of Values)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Contiene:
- Funzioni di validazione standalone
- Schemas per ScheduleOfValuesLineItem
- Schema di riepilogo del computo
"""

import datetime
import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from progress_billing.core.exceptions import BusinessValidationError


# -------------------------------------------------------------------
# Funzioni di validazione standalone
# -------------------------------------------------------------------

def validate_sov_amounts(
    scheduled_value: Optional[Decimal],
    retainage_pct: Optional[Decimal],
) -> None:
    """
    Valida importo contrattuale e ritenuta di una voce.

    Args:
        scheduled_value: Importo contrattuale
        retainage_pct: Percentuale di ritenuta

    Raises:
        BusinessValidationError: Importo negativo o ritenuta fuori 0-100
    """
    if scheduled_value is not None and scheduled_value < 0:
        raise BusinessValidationError(
            "L'importo contrattuale non può essere negativo",
            extra={"field": "scheduled_value", "value": str(scheduled_value)},
        )
    if retainage_pct is not None and not (0 <= retainage_pct <= 100):
        raise BusinessValidationError(
            "La percentuale di ritenuta deve essere compresa tra 0 e 100",
            extra={"field": "retainage_pct", "value": str(retainage_pct)},
        )


def normalize_item_number(v: Optional[str]) -> Optional[str]:
    """Rimuove gli spazi dal numero voce; stringa vuota equivale a None."""
    if v is None:
        return None
    v = v.strip()
    return v or None


# -------------------------------------------------------------------
# Schemas per ScheduleOfValuesLineItem
# -------------------------------------------------------------------

class SOVLineItemCreate(BaseModel):
    """
    Schema per la creazione di una voce di computo.

    item_number, retainage_pct e sort_order sono opzionali:
    il service assegna il prossimo numero, la ritenuta di default
    e la posizione in coda.
    """

    item_number: Optional[str] = Field(None, max_length=20, description="Numero voce (es. '01')")
    description: str = Field("", max_length=5000, description="Descrizione del lavoro")
    scheduled_value: Decimal = Field(..., ge=0, description="Importo contrattuale della voce")
    retainage_pct: Optional[Decimal] = Field(
        None, ge=0, le=100, description="Percentuale di ritenuta (default da configurazione)"
    )
    sort_order: Optional[int] = Field(None, ge=0, description="Ordine di visualizzazione")

    @field_validator("item_number")
    @classmethod
    def validate_item_number(cls, v: Optional[str]) -> Optional[str]:
        return normalize_item_number(v)


class SOVLineItemUpdate(BaseModel):
    """
    Schema per l'aggiornamento di una voce di computo.

    Tutti i campi sono opzionali per permettere aggiornamenti parziali.
    """

    item_number: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, max_length=5000)
    scheduled_value: Optional[Decimal] = Field(None, ge=0)
    retainage_pct: Optional[Decimal] = Field(None, ge=0, le=100)
    sort_order: Optional[int] = Field(None, ge=0)

    @field_validator("item_number")
    @classmethod
    def validate_item_number(cls, v: Optional[str]) -> Optional[str]:
        return normalize_item_number(v)


class SOVLineItemRead(BaseModel):
    """Schema per la lettura di una voce di computo."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID = Field(..., serialization_alias="projectId")
    item_number: str = Field(..., serialization_alias="itemNumber")
    description: str
    scheduled_value: Decimal = Field(..., serialization_alias="scheduledValue")
    retainage_pct: Decimal = Field(..., serialization_alias="retainagePct")
    sort_order: int = Field(..., serialization_alias="sortOrder")
    created_at: datetime.datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime.datetime = Field(..., serialization_alias="updatedAt")


class SOVSummary(BaseModel):
    """
    Riepilogo del computo di un progetto.

    Attributes:
        project_id: UUID del progetto
        item_count: Numero di voci
        total_scheduled_value: Importo contrattuale complessivo
        average_retainage_pct: Ritenuta media ponderata sugli importi
    """

    project_id: uuid.UUID = Field(..., serialization_alias="projectId")
    item_count: int = Field(0, serialization_alias="itemCount")
    total_scheduled_value: Decimal = Field(Decimal("0.00"), serialization_alias="totalScheduledValue")
    average_retainage_pct: Decimal = Field(..., serialization_alias="averageRetainagePct")

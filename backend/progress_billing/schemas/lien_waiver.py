"""
Schemas Pydantic per le Liberatorie (Lien Waiver)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WaiverType(str, Enum):
    """Tipi di liberatoria: condizionata o no, parziale (progress) o finale."""
    CONDITIONAL_PROGRESS = "conditional_progress"
    UNCONDITIONAL_PROGRESS = "unconditional_progress"
    CONDITIONAL_FINAL = "conditional_final"
    UNCONDITIONAL_FINAL = "unconditional_final"


class LienWaiverCreate(BaseModel):
    """Schema per la registrazione di una liberatoria."""

    waiver_type: WaiverType = Field(..., description="Tipo di liberatoria")
    amount: Optional[Decimal] = Field(None, ge=0, description="Importo liberato")
    through_date: Optional[datetime.date] = Field(None, description="Data fino a cui vale la liberatoria")
    received_date: Optional[datetime.date] = Field(None, description="Data di ricezione")
    file_url: Optional[str] = Field(None, max_length=1000, description="URL del documento firmato")
    notes: Optional[str] = Field(None, max_length=5000)


class LienWaiverRead(LienWaiverCreate):
    """Schema per la lettura di una liberatoria."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    pay_app_id: uuid.UUID = Field(..., serialization_alias="payAppId")
    waiver_type: WaiverType = Field(..., serialization_alias="waiverType")
    through_date: Optional[datetime.date] = Field(None, serialization_alias="throughDate")
    received_date: Optional[datetime.date] = Field(None, serialization_alias="receivedDate")
    file_url: Optional[str] = Field(None, serialization_alias="fileUrl")
    created_at: datetime.datetime = Field(..., serialization_alias="createdAt")

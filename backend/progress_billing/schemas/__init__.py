"""
Schemas Pydantic per il progetto SAL Manager

Questo modulo contiene tutti gli schemi Pydantic utilizzati per la validazione
e serializzazione delle risposte API.
"""

# Import degli schemi per renderli disponibili tramite import diretto
# es: from progress_billing.schemas import PayApplicationRead, SOVLineItemRead, etc.

from progress_billing.schemas.schedule_of_values import (
    SOVLineItemCreate,
    SOVLineItemRead,
    SOVLineItemUpdate,
    SOVSummary,
)
from progress_billing.schemas.pay_application import (
    CERTIFIED_STATUSES,
    EDITABLE_STATUSES,
    VALID_TRANSITIONS,
    NextPayAppNumber,
    PayAppLineItemRead,
    PayAppLineItemUpdate,
    PayApplicationCreate,
    PayApplicationRead,
    PayApplicationUpdate,
    PayAppStatus,
    PayAppTransition,
    ProjectBillingSummary,
)
from progress_billing.schemas.lien_waiver import (
    LienWaiverCreate,
    LienWaiverRead,
    WaiverType,
)

__all__ = [
    # Schedule of Values schemas
    "SOVLineItemCreate",
    "SOVLineItemRead",
    "SOVLineItemUpdate",
    "SOVSummary",
    # PayApplication schemas
    "CERTIFIED_STATUSES",
    "EDITABLE_STATUSES",
    "VALID_TRANSITIONS",
    "NextPayAppNumber",
    "PayAppLineItemRead",
    "PayAppLineItemUpdate",
    "PayApplicationCreate",
    "PayApplicationRead",
    "PayApplicationUpdate",
    "PayAppStatus",
    "PayAppTransition",
    "ProjectBillingSummary",
    # LienWaiver schemas
    "LienWaiverCreate",
    "LienWaiverRead",
    "WaiverType",
]

"""
Router FastAPI per i SAL (Pay Application)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Definisce gli endpoint API per creazione, consultazione, modifica
delle righe e cambio di stato dei SAL.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.core.database import get_db
from progress_billing.schemas.pay_application import (
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
from progress_billing.services.pay_application_service import PayApplicationService
from progress_billing.services.totals_engine import PayAppTotals

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanza del service
pay_app_service = PayApplicationService()

router = APIRouter(
    tags=["SAL"],
)


# -------------------------------------------------------------------
# Endpoints per progetto
# -------------------------------------------------------------------

@router.get(
    "/projects/{project_id}/pay-applications",
    name="sal_lista",
    summary="Lista SAL del progetto",
    description="Recupera i SAL del progetto in ordine di numero, con eventuale filtro per stato.",
    response_model=list[PayApplicationRead],
    status_code=status.HTTP_200_OK,
)
async def list_pay_applications(
    project_id: uuid.UUID = Path(..., description="UUID del progetto"),
    status_filter: Optional[PayAppStatus] = Query(None, alias="status", description="Filtro per stato"),
    db: AsyncSession = Depends(get_db),
) -> list[PayApplicationRead]:
    pay_apps = await pay_app_service.list_by_project(db, project_id, status=status_filter)
    return [PayApplicationRead.model_validate(pay_app) for pay_app in pay_apps]


@router.get(
    "/projects/{project_id}/pay-applications/next-number",
    name="sal_prossimo_numero",
    summary="Prossimo numero SAL",
    response_model=NextPayAppNumber,
    status_code=status.HTTP_200_OK,
)
async def get_next_pay_app_number(
    project_id: uuid.UUID = Path(..., description="UUID del progetto"),
    db: AsyncSession = Depends(get_db),
) -> NextPayAppNumber:
    next_number = await pay_app_service.next_number(db, project_id)
    return NextPayAppNumber(project_id=project_id, next_number=next_number)


@router.get(
    "/projects/{project_id}/pay-applications/summary",
    name="sal_riepilogo_progetto",
    summary="Riepilogo fatturazione del progetto",
    description="Conteggi per stato, certificato e ritenute cumulate dei SAL certificati o pagati.",
    response_model=ProjectBillingSummary,
    status_code=status.HTTP_200_OK,
)
async def get_billing_summary(
    project_id: uuid.UUID = Path(..., description="UUID del progetto"),
    db: AsyncSession = Depends(get_db),
) -> ProjectBillingSummary:
    return await pay_app_service.summary(db, project_id)


@router.post(
    "/projects/{project_id}/pay-applications",
    name="sal_crea",
    summary="Crea SAL",
    description=(
        "Crea un SAL in bozza con una riga per ogni voce del computo; "
        "work_completed_previous è il certificato cumulato dei SAL certificati o pagati."
    ),
    response_model=PayApplicationRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_pay_application(
    data: PayApplicationCreate,
    project_id: uuid.UUID = Path(..., description="UUID del progetto"),
    db: AsyncSession = Depends(get_db),
) -> PayApplicationRead:
    """
    Crea un nuovo SAL.

    Raises:
        BusinessValidationError: Periodo non valido o numero duplicato
    """
    pay_app = await pay_app_service.create(db, project_id, data)
    return PayApplicationRead.model_validate(pay_app)


# -------------------------------------------------------------------
# Endpoints per SAL
# -------------------------------------------------------------------

@router.get(
    "/pay-applications/{pay_app_id}",
    name="sal_dettaglio",
    summary="Dettaglio SAL",
    description="Recupera il SAL con righe, totali del periodo e righe oltre l'importo contrattuale.",
    response_model=PayApplicationRead,
    status_code=status.HTTP_200_OK,
)
async def get_pay_application(
    pay_app_id: uuid.UUID = Path(..., description="UUID del SAL"),
    db: AsyncSession = Depends(get_db),
) -> PayApplicationRead:
    pay_app = await pay_app_service.get_by_id(db, pay_app_id)
    return PayApplicationRead.model_validate(pay_app)


@router.patch(
    "/pay-applications/{pay_app_id}",
    name="sal_aggiorna",
    summary="Aggiorna testata SAL",
    description="Aggiorna i dati di testata; dopo la certificazione solo le note.",
    response_model=PayApplicationRead,
    status_code=status.HTTP_200_OK,
)
async def update_pay_application(
    data: PayApplicationUpdate,
    pay_app_id: uuid.UUID = Path(..., description="UUID del SAL"),
    db: AsyncSession = Depends(get_db),
) -> PayApplicationRead:
    pay_app = await pay_app_service.update(db, pay_app_id, data)
    return PayApplicationRead.model_validate(pay_app)


@router.delete(
    "/pay-applications/{pay_app_id}",
    name="sal_elimina",
    summary="Elimina SAL in bozza",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_pay_application(
    pay_app_id: uuid.UUID = Path(..., description="UUID del SAL"),
    db: AsyncSession = Depends(get_db),
) -> None:
    await pay_app_service.delete(db, pay_app_id)


@router.post(
    "/pay-applications/{pay_app_id}/transition",
    name="sal_cambia_stato",
    summary="Cambia stato SAL",
    description="Avanza lo stato del SAL: draft → submitted → certified → paid.",
    response_model=PayApplicationRead,
    status_code=status.HTTP_200_OK,
)
async def transition_pay_application(
    data: PayAppTransition,
    pay_app_id: uuid.UUID = Path(..., description="UUID del SAL"),
    db: AsyncSession = Depends(get_db),
) -> PayApplicationRead:
    """
    Cambia lo stato del SAL.

    Raises:
        NotFoundError: Se il SAL non esiste
        InvalidTransitionError: Se la transizione non è consentita
    """
    pay_app = await pay_app_service.transition(
        db,
        pay_app_id,
        data.status,
        certified_by=data.certified_by,
        effective_date=data.effective_date,
    )
    return PayApplicationRead.model_validate(pay_app)


@router.get(
    "/pay-applications/{pay_app_id}/totals",
    name="sal_totali",
    summary="Totali SAL",
    description="Totali del periodo: certificato, ritenuta, netto da pagare e percentuale di completamento.",
    response_model=PayAppTotals,
    status_code=status.HTTP_200_OK,
)
async def get_pay_application_totals(
    pay_app_id: uuid.UUID = Path(..., description="UUID del SAL"),
    db: AsyncSession = Depends(get_db),
) -> PayAppTotals:
    return await pay_app_service.get_totals(db, pay_app_id)


@router.patch(
    "/pay-applications/{pay_app_id}/line-items/{line_item_id}",
    name="sal_aggiorna_riga",
    summary="Aggiorna riga SAL",
    description="Aggiorna eseguito, materiali e override di una riga; solo per SAL in bozza o inviati.",
    response_model=PayAppLineItemRead,
    status_code=status.HTTP_200_OK,
)
async def update_pay_app_line_item(
    data: PayAppLineItemUpdate,
    pay_app_id: uuid.UUID = Path(..., description="UUID del SAL"),
    line_item_id: uuid.UUID = Path(..., description="UUID della riga"),
    db: AsyncSession = Depends(get_db),
) -> PayAppLineItemRead:
    """
    Aggiorna una riga del SAL.

    Raises:
        NotFoundError: Se la riga non esiste nel SAL
        InvalidStateError: Se il SAL è certificato o pagato
    """
    line_item = await pay_app_service.update_line_item(db, line_item_id, data, pay_app_id=pay_app_id)
    return PayAppLineItemRead.model_validate(line_item)

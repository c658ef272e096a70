"""
Router FastAPI per il Computo Contrattuale (Schedule of Values)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Definisce gli endpoint API per la gestione delle voci del computo
di un progetto.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.core.database import get_db
from progress_billing.schemas.schedule_of_values import (
    SOVLineItemCreate,
    SOVLineItemRead,
    SOVLineItemUpdate,
    SOVSummary,
)
from progress_billing.services.schedule_of_values_service import ScheduleOfValuesService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanza del service
sov_service = ScheduleOfValuesService()

# Router con tag (i percorsi includono il progetto o la voce)
router = APIRouter(
    tags=["Computo Contrattuale"],
)


@router.get(
    "/projects/{project_id}/sov",
    name="computo_lista",
    summary="Lista voci di computo",
    description="Recupera le voci del computo del progetto ordinate per sort_order e numero voce.",
    response_model=list[SOVLineItemRead],
    status_code=status.HTTP_200_OK,
)
async def list_sov_items(
    project_id: uuid.UUID = Path(..., description="UUID del progetto"),
    db: AsyncSession = Depends(get_db),
) -> list[SOVLineItemRead]:
    items = await sov_service.list_by_project(db, project_id)
    return [SOVLineItemRead.model_validate(item) for item in items]


@router.get(
    "/projects/{project_id}/sov/summary",
    name="computo_riepilogo",
    summary="Riepilogo computo",
    description="Numero voci, importo contrattuale totale e ritenuta media ponderata.",
    response_model=SOVSummary,
    status_code=status.HTTP_200_OK,
)
async def get_sov_summary(
    project_id: uuid.UUID = Path(..., description="UUID del progetto"),
    db: AsyncSession = Depends(get_db),
) -> SOVSummary:
    return await sov_service.summary(db, project_id)


@router.post(
    "/projects/{project_id}/sov",
    name="computo_crea_voce",
    summary="Crea voce di computo",
    description=(
        "Crea una voce di computo. Se omessi, numero voce, ritenuta e ordine "
        "vengono assegnati automaticamente."
    ),
    response_model=SOVLineItemRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_sov_item(
    data: SOVLineItemCreate,
    project_id: uuid.UUID = Path(..., description="UUID del progetto"),
    db: AsyncSession = Depends(get_db),
) -> SOVLineItemRead:
    """
    Crea una nuova voce di computo.

    Raises:
        BusinessValidationError: Importi non validi o numero voce duplicato
    """
    item = await sov_service.upsert(db, project_id, data)
    return SOVLineItemRead.model_validate(item)


@router.put(
    "/sov/{item_id}",
    name="computo_aggiorna_voce",
    summary="Aggiorna voce di computo",
    description="Aggiorna parzialmente una voce di computo.",
    response_model=SOVLineItemRead,
    status_code=status.HTTP_200_OK,
)
async def update_sov_item(
    data: SOVLineItemUpdate,
    item_id: uuid.UUID = Path(..., description="UUID della voce"),
    db: AsyncSession = Depends(get_db),
) -> SOVLineItemRead:
    item = await sov_service.update(db, item_id, data)
    return SOVLineItemRead.model_validate(item)


@router.delete(
    "/sov/{item_id}",
    name="computo_elimina_voce",
    summary="Elimina voce di computo",
    description="Elimina una voce di computo mai usata in un SAL.",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_sov_item(
    item_id: uuid.UUID = Path(..., description="UUID della voce"),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Elimina una voce di computo.

    Raises:
        NotFoundError: Se la voce non esiste
        ReferencedEntityError: Se la voce è usata in almeno un SAL
    """
    await sov_service.delete(db, item_id)

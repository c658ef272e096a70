"""
Router FastAPI per le Liberatorie (Lien Waiver)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Solo registrazione ed elenco: le liberatorie non si modificano né si eliminano.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.core.database import get_db
from progress_billing.schemas.lien_waiver import LienWaiverCreate, LienWaiverRead
from progress_billing.services.lien_waiver_service import LienWaiverService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanza del service
lien_waiver_service = LienWaiverService()

router = APIRouter(
    prefix="/pay-applications",
    tags=["Liberatorie"],
)


@router.get(
    "/{pay_app_id}/lien-waivers",
    name="liberatorie_lista",
    summary="Lista liberatorie del SAL",
    response_model=list[LienWaiverRead],
    status_code=status.HTTP_200_OK,
)
async def list_lien_waivers(
    pay_app_id: uuid.UUID = Path(..., description="UUID del SAL"),
    db: AsyncSession = Depends(get_db),
) -> list[LienWaiverRead]:
    waivers = await lien_waiver_service.list_by_pay_app(db, pay_app_id)
    return [LienWaiverRead.model_validate(waiver) for waiver in waivers]


@router.post(
    "/{pay_app_id}/lien-waivers",
    name="liberatoria_registra",
    summary="Registra liberatoria",
    description="Registra una liberatoria su un SAL certificato o pagato.",
    response_model=LienWaiverRead,
    status_code=status.HTTP_201_CREATED,
)
async def record_lien_waiver(
    data: LienWaiverCreate,
    pay_app_id: uuid.UUID = Path(..., description="UUID del SAL"),
    db: AsyncSession = Depends(get_db),
) -> LienWaiverRead:
    """
    Registra una liberatoria.

    Raises:
        NotFoundError: Se il SAL non esiste
        InvalidStateError: Se il SAL non è certificato o pagato
    """
    waiver = await lien_waiver_service.record(db, pay_app_id, data)
    return LienWaiverRead.model_validate(waiver)

"""
Service Layer per le Liberatorie (Lien Waiver)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Le liberatorie sono record di audit in sola aggiunta: il service
espone solo registrazione ed elenco.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.core.exceptions import (
    BusinessValidationError,
    InvalidStateError,
    NotFoundError,
)
from progress_billing.models import LienWaiver, PayApplication
from progress_billing.schemas.lien_waiver import LienWaiverCreate
from progress_billing.schemas.pay_application import CERTIFIED_STATUSES, PayAppStatus

# Logger per questo modulo
logger = logging.getLogger(__name__)


class LienWaiverService:
    """
    Service per la registrazione delle liberatorie sui SAL.

    Una liberatoria attesta importi fatturati: può essere registrata
    solo su SAL certificati o pagati.
    """

    async def _get_pay_app(self, db: AsyncSession, pay_app_id: uuid.UUID) -> PayApplication:
        """Recupera la testata del SAL (senza righe)."""
        result = await db.execute(
            select(PayApplication)
            .where(PayApplication.id == pay_app_id)
            .execution_options(populate_existing=True)
        )
        pay_app = result.scalar_one_or_none()

        if not pay_app:
            logger.warning("SAL non trovato: %s", pay_app_id)
            raise NotFoundError(f"SAL con ID {pay_app_id} non trovato")

        return pay_app

    async def record(
        self,
        db: AsyncSession,
        pay_app_id: uuid.UUID,
        data: LienWaiverCreate,
    ) -> LienWaiver:
        """
        Registra una liberatoria su un SAL.

        Args:
            db: Sessione database
            pay_app_id: UUID del SAL
            data: Dati della liberatoria

        Returns:
            LienWaiver: La liberatoria registrata

        Raises:
            NotFoundError: Se il SAL non esiste
            InvalidStateError: Se il SAL non è certificato o pagato
        """
        pay_app = await self._get_pay_app(db, pay_app_id)

        if PayAppStatus(pay_app.status) not in CERTIFIED_STATUSES:
            logger.warning(
                "Liberatoria rifiutata: SAL n. %s in stato '%s'",
                pay_app.pay_app_number,
                pay_app.status,
            )
            raise InvalidStateError(
                f"Le liberatorie si registrano solo su SAL certificati o pagati "
                f"(stato attuale: '{pay_app.status}')",
                extra={"pay_app_id": str(pay_app_id), "status": pay_app.status},
            )

        waiver = LienWaiver(
            pay_app_id=pay_app_id,
            waiver_type=data.waiver_type.value,
            amount=data.amount,
            through_date=data.through_date,
            received_date=data.received_date,
            file_url=data.file_url,
            notes=data.notes,
        )
        db.add(waiver)

        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità registrando la liberatoria: %s", e)
            raise BusinessValidationError("Dati della liberatoria non validi")

        logger.info(
            "Registrata liberatoria %s sul SAL n. %s (importo %s)",
            waiver.waiver_type,
            pay_app.pay_app_number,
            waiver.amount,
        )
        return waiver

    async def list_by_pay_app(
        self,
        db: AsyncSession,
        pay_app_id: uuid.UUID,
    ) -> list[LienWaiver]:
        """
        Elenca le liberatorie di un SAL in ordine di registrazione.

        Raises:
            NotFoundError: Se il SAL non esiste
        """
        await self._get_pay_app(db, pay_app_id)

        result = await db.execute(
            select(LienWaiver)
            .where(LienWaiver.pay_app_id == pay_app_id)
            .order_by(LienWaiver.created_at.asc())
        )
        waivers = list(result.scalars().all())

        logger.debug("Recuperate %d liberatorie per il SAL %s", len(waivers), pay_app_id)
        return waivers

"""
Service Layer per il Computo Contrattuale (Schedule of Values)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Definisce la logica di business per le voci del computo:
inserimento e modifica con validazione, eliminazione protetta
e riepilogo del progetto.
"""

import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.core.config import Settings, get_settings
from progress_billing.core.exceptions import (
    BusinessValidationError,
    InvalidStateError,
    NotFoundError,
    ReferencedEntityError,
)
from progress_billing.models import PayApplication, PayAppLineItem, ScheduleOfValuesLineItem
from progress_billing.schemas.pay_application import CERTIFIED_STATUSES
from progress_billing.schemas.schedule_of_values import (
    SOVLineItemCreate,
    SOVLineItemUpdate,
    SOVSummary,
    validate_sov_amounts,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)


class ScheduleOfValuesService:
    """
    Service per la gestione delle voci del computo contrattuale.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.

    Implementa:
    - Inserimento/modifica voce con validazione importi e unicità del numero
    - Numerazione automatica delle voci (01, 02, ...)
    - Eliminazione consentita solo per voci mai usate in un SAL
    - Riepilogo con ritenuta media ponderata
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """
        Inizializza il service.

        Args:
            settings: Impostazioni (default: singleton applicazione)
        """
        self.settings = settings or get_settings()

    async def list_by_project(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
    ) -> list[ScheduleOfValuesLineItem]:
        """
        Elenca le voci del computo di un progetto.

        Ordinamento per sort_order crescente, a parità per item_number.

        Args:
            db: Sessione database
            project_id: UUID del progetto

        Returns:
            Lista di ScheduleOfValuesLineItem
        """
        query = (
            select(ScheduleOfValuesLineItem)
            .where(ScheduleOfValuesLineItem.project_id == project_id)
            .order_by(
                ScheduleOfValuesLineItem.sort_order.asc(),
                ScheduleOfValuesLineItem.item_number.asc(),
            )
        )
        result = await db.execute(query)
        items = list(result.scalars().all())

        logger.debug("Recuperate %d voci di computo per il progetto %s", len(items), project_id)
        return items

    async def get_by_id(
        self,
        db: AsyncSession,
        item_id: uuid.UUID,
    ) -> ScheduleOfValuesLineItem:
        """
        Recupera una voce di computo tramite ID.

        Raises:
            NotFoundError: Se la voce non esiste
        """
        result = await db.execute(
            select(ScheduleOfValuesLineItem).where(ScheduleOfValuesLineItem.id == item_id)
        )
        item = result.scalar_one_or_none()

        if not item:
            logger.warning("Voce di computo non trovata: %s", item_id)
            raise NotFoundError(f"Voce di computo con ID {item_id} non trovata")

        return item

    async def upsert(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        data: Union[SOVLineItemCreate, SOVLineItemUpdate],
        item_id: Optional[uuid.UUID] = None,
    ) -> ScheduleOfValuesLineItem:
        """
        Inserisce una nuova voce o aggiorna quella indicata.

        Args:
            db: Sessione database
            project_id: UUID del progetto
            data: Dati della voce
            item_id: UUID della voce da aggiornare (None = nuova voce)

        Returns:
            ScheduleOfValuesLineItem salvata

        Raises:
            BusinessValidationError: Importi non validi o numero voce duplicato
            NotFoundError: Voce da aggiornare non trovata nel progetto
        """
        if item_id is None:
            return await self.create(db, project_id, data)

        item = await self.get_by_id(db, item_id)
        if item.project_id != project_id:
            raise NotFoundError(f"Voce di computo con ID {item_id} non trovata nel progetto {project_id}")
        return await self.update(db, item_id, data)

    async def create(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        data: SOVLineItemCreate,
    ) -> ScheduleOfValuesLineItem:
        """
        Crea una nuova voce di computo.

        Steps:
        1. Valida importo contrattuale e ritenuta
        2. Assegna il numero voce se non fornito, altrimenti ne verifica l'unicità
        3. Applica la ritenuta di default e accoda la voce se l'ordine non è indicato
        4. Salva

        Raises:
            BusinessValidationError: Importi non validi o numero voce duplicato
        """
        validate_sov_amounts(data.scheduled_value, data.retainage_pct)

        if data.item_number:
            item_number = data.item_number
            await self._check_unique_item_number(db, project_id, item_number)
        else:
            item_number = await self._next_item_number(db, project_id)

        retainage_pct = data.retainage_pct
        if retainage_pct is None:
            retainage_pct = self.settings.default_retainage_pct

        sort_order = data.sort_order
        if sort_order is None:
            sort_order = await self._next_sort_order(db, project_id)

        item = ScheduleOfValuesLineItem(
            project_id=project_id,
            item_number=item_number,
            description=data.description or "",
            scheduled_value=data.scheduled_value,
            retainage_pct=retainage_pct,
            sort_order=sort_order,
        )
        db.add(item)

        await self._commit(db, item_number)

        logger.info(
            "Creata voce di computo %s (progetto %s, importo %s)",
            item_number,
            project_id,
            item.scheduled_value,
        )
        return item

    async def update(
        self,
        db: AsyncSession,
        item_id: uuid.UUID,
        data: SOVLineItemUpdate,
    ) -> ScheduleOfValuesLineItem:
        """
        Aggiorna una voce di computo esistente.

        Solo i campi forniti vengono modificati. Importo e ritenuta sono
        bloccati se la voce compare in un SAL certificato o pagato.

        Raises:
            NotFoundError: Se la voce non esiste
            BusinessValidationError: Importi non validi o numero voce duplicato
            InvalidStateError: Importo o ritenuta di una voce già certificata
        """
        item = await self.get_by_id(db, item_id)

        update_data = data.model_dump(exclude_unset=True)
        # Campi obbligatori: un null esplicito equivale a "non modificare"
        update_data = {field: value for field, value in update_data.items() if value is not None}

        validate_sov_amounts(
            update_data.get("scheduled_value", item.scheduled_value),
            update_data.get("retainage_pct", item.retainage_pct),
        )

        changed_amounts = sorted(
            field
            for field in ("scheduled_value", "retainage_pct")
            if field in update_data and update_data[field] != getattr(item, field)
        )
        if changed_amounts:
            await self._check_not_certified(db, item, changed_amounts)

        new_number = update_data.get("item_number")
        if new_number and new_number != item.item_number:
            await self._check_unique_item_number(db, item.project_id, new_number)

        for field, value in update_data.items():
            setattr(item, field, value)

        await self._commit(db, item.item_number)

        logger.info("Aggiornata voce di computo %s (%s)", item.item_number, item_id)
        return item

    async def delete(
        self,
        db: AsyncSession,
        item_id: uuid.UUID,
    ) -> None:
        """
        Elimina una voce di computo.

        Una voce referenziata da almeno una riga di SAL, in qualunque
        periodo e stato, non può essere eliminata.

        Raises:
            NotFoundError: Se la voce non esiste
            ReferencedEntityError: Se la voce è usata in un SAL
        """
        item = await self.get_by_id(db, item_id)

        usage_count = await db.scalar(
            select(func.count(PayAppLineItem.id)).where(PayAppLineItem.sov_line_item_id == item_id)
        )
        if usage_count:
            logger.warning(
                "Eliminazione rifiutata: voce %s usata in %d righe di SAL",
                item.item_number,
                usage_count,
            )
            raise ReferencedEntityError(
                f"La voce {item.item_number} è usata in {usage_count} righe di SAL e non può essere eliminata",
                extra={"sov_line_item_id": str(item_id), "references": usage_count},
            )

        item_number = item.item_number
        await db.delete(item)
        try:
            await db.commit()
        except IntegrityError as e:
            # Riga di SAL inserita da un'altra transazione dopo il controllo
            await db.rollback()
            logger.error("Errore di integrità eliminando la voce %s: %s", item_id, e)
            raise ReferencedEntityError(
                f"La voce {item_number} è usata in un SAL e non può essere eliminata"
            )

        logger.info("Eliminata voce di computo %s (%s)", item_number, item_id)

    async def summary(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
    ) -> SOVSummary:
        """
        Riepilogo del computo: numero voci, importo totale e ritenuta media.

        La ritenuta media è ponderata sugli importi contrattuali; senza
        importi si usa la ritenuta di default.
        """
        items = await self.list_by_project(db, project_id)

        total = sum((item.scheduled_value for item in items), Decimal("0.00"))
        if total > 0:
            weighted = sum(item.scheduled_value * item.retainage_pct for item in items)
            average = (weighted / total).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        else:
            average = self.settings.default_retainage_pct

        return SOVSummary(
            project_id=project_id,
            item_count=len(items),
            total_scheduled_value=total,
            average_retainage_pct=average,
        )

    # -------------------------------------------------------------------
    # Metodi interni
    # -------------------------------------------------------------------

    async def _check_not_certified(
        self,
        db: AsyncSession,
        item: ScheduleOfValuesLineItem,
        fields: list[str],
    ) -> None:
        """
        Rifiuta la modifica di importo o ritenuta di una voce già certificata.

        I totali dei SAL certificati o pagati si calcolano dai valori
        della voce: cambiarli riscriverebbe periodi chiusi.

        Raises:
            InvalidStateError: Se la voce è in un SAL certificato o pagato
        """
        certified_count = await db.scalar(
            select(func.count(PayAppLineItem.id))
            .join(PayApplication, PayAppLineItem.pay_app_id == PayApplication.id)
            .where(
                PayAppLineItem.sov_line_item_id == item.id,
                PayApplication.status.in_([s.value for s in CERTIFIED_STATUSES]),
            )
        )
        if certified_count:
            logger.warning(
                "Modifica rifiutata: voce %s presente in %d SAL certificati (%s)",
                item.item_number,
                certified_count,
                ", ".join(fields),
            )
            raise InvalidStateError(
                f"La voce {item.item_number} è in un SAL certificato: "
                "importo contrattuale e ritenuta non sono modificabili",
                extra={"sov_line_item_id": str(item.id), "fields": fields},
            )

    async def _check_unique_item_number(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        item_number: str,
    ) -> None:
        """Verifica che il numero voce non sia già usato nel progetto."""
        existing = await db.scalar(
            select(ScheduleOfValuesLineItem.id).where(
                ScheduleOfValuesLineItem.project_id == project_id,
                ScheduleOfValuesLineItem.item_number == item_number,
            )
        )
        if existing is not None:
            raise BusinessValidationError(
                f"Numero voce '{item_number}' già presente nel computo del progetto",
                extra={"item_number": item_number},
            )

    async def _next_item_number(self, db: AsyncSession, project_id: uuid.UUID) -> str:
        """
        Prossimo numero voce libero: numero di voci + 1, con zero-padding a 2 cifre.

        Se il numero è già occupato (es. dopo un'eliminazione) si prosegue
        al successivo.
        """
        result = await db.execute(
            select(ScheduleOfValuesLineItem.item_number).where(
                ScheduleOfValuesLineItem.project_id == project_id
            )
        )
        used = set(result.scalars().all())

        candidate = len(used) + 1
        while f"{candidate:02d}" in used:
            candidate += 1
        return f"{candidate:02d}"

    async def _next_sort_order(self, db: AsyncSession, project_id: uuid.UUID) -> int:
        """Posizione in coda al computo."""
        max_order = await db.scalar(
            select(func.max(ScheduleOfValuesLineItem.sort_order)).where(
                ScheduleOfValuesLineItem.project_id == project_id
            )
        )
        return 0 if max_order is None else max_order + 1

    async def _commit(self, db: AsyncSession, item_number: str) -> None:
        """Commit con conversione dei conflitti di unicità in errore di validazione."""
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità salvando la voce %s: %s", item_number, e)
            raise BusinessValidationError(
                f"Numero voce '{item_number}' già presente nel computo del progetto"
            )

"""
Service Layer per i SAL (Pay Application)
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Definisce la logica di business del ciclo di vita dei SAL:
creazione con precompilazione delle righe dai periodi certificati,
modifica delle righe, transizioni di stato e riepiloghi.
"""

import datetime
import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from progress_billing.core.config import Settings, get_settings
from progress_billing.core.exceptions import (
    BusinessValidationError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
)
from progress_billing.models import PayApplication, PayAppLineItem, ScheduleOfValuesLineItem
from progress_billing.schemas.pay_application import (
    CERTIFIED_STATUSES,
    EDITABLE_STATUSES,
    VALID_TRANSITIONS,
    PayAppLineItemUpdate,
    PayApplicationCreate,
    PayApplicationUpdate,
    PayAppStatus,
    ProjectBillingSummary,
    validate_period_order,
)
from progress_billing.services.totals_engine import (
    PayAppLineItemView,
    PayAppTotals,
    compute_totals,
    find_overbilled_items,
    is_overbilled,
    resolve_certified,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Le chiavi degli advisory lock PostgreSQL sono bigint con segno
_LOCK_KEY_MASK = 0x7FFFFFFFFFFFFFFF


class PayApplicationService:
    """
    Service per la gestione del ciclo di vita dei SAL.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.

    Implementa:
    - Creazione SAL con numerazione progressiva per progetto
    - Precompilazione di work_completed_previous dai periodi certificati o pagati
    - Modifica righe solo in bozza o inviato
    - Transizioni di stato solo in avanti (draft → submitted → certified → paid)
    - Rilevamento delle righe oltre l'importo contrattuale
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """
        Inizializza il service.

        Args:
            settings: Impostazioni (default: singleton applicazione)
        """
        self.settings = settings or get_settings()

    def _check_editable_status(self, pay_app: PayApplication) -> None:
        """
        Verifica che le righe del SAL siano modificabili.

        Solo i SAL in stato DRAFT o SUBMITTED possono essere modificati.

        Raises:
            InvalidStateError: Se il SAL è certificato o pagato
        """
        if PayAppStatus(pay_app.status) not in EDITABLE_STATUSES:
            logger.warning(
                "Modifica rifiutata: SAL n. %s in stato '%s'",
                pay_app.pay_app_number,
                pay_app.status,
            )
            raise InvalidStateError(
                f"Non è possibile modificare un SAL in stato '{pay_app.status}'",
                extra={"pay_app_id": str(pay_app.id), "status": pay_app.status},
            )

    async def _acquire_project_lock(self, db: AsyncSession, project_id: uuid.UUID) -> None:
        """
        Acquisisce l'advisory lock di progetto per la durata della transazione.

        Serializza le creazioni di SAL dello stesso progetto: lettura dei
        periodi certificati e scrittura del nuovo periodo sono atomiche
        rispetto alle altre creazioni. Su SQLite le scritture sono già
        serializzate e il lock non è necessario.
        """
        if db.get_bind().dialect.name != "postgresql":
            return
        await db.execute(
            text("SELECT pg_advisory_xact_lock(:lock_key)"),
            {"lock_key": project_id.int & _LOCK_KEY_MASK},
        )

    # -------------------------------------------------------------------
    # Letture
    # -------------------------------------------------------------------

    async def get_by_id(
        self,
        db: AsyncSession,
        pay_app_id: uuid.UUID,
    ) -> PayApplication:
        """
        Recupera un SAL con le righe e le relative voci di computo.

        Args:
            db: Sessione database
            pay_app_id: UUID del SAL

        Returns:
            PayApplication: Il SAL trovato

        Raises:
            NotFoundError: Se il SAL non esiste
        """
        query = (
            select(PayApplication)
            .where(PayApplication.id == pay_app_id)
            .options(
                selectinload(PayApplication.line_items).selectinload(PayAppLineItem.sov_line_item),
            )
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        pay_app = result.scalar_one_or_none()

        if not pay_app:
            logger.warning("SAL non trovato: %s", pay_app_id)
            raise NotFoundError(f"SAL con ID {pay_app_id} non trovato")

        logger.debug("Recuperato SAL %s con %d righe", pay_app_id, len(pay_app.line_items))
        return pay_app

    async def list_by_project(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        status: Optional[PayAppStatus] = None,
    ) -> list[PayApplication]:
        """
        Elenca i SAL di un progetto in ordine di numero.

        Args:
            db: Sessione database
            project_id: UUID del progetto
            status: Filtro per stato (opzionale)
        """
        query = (
            select(PayApplication)
            .where(PayApplication.project_id == project_id)
            .options(
                selectinload(PayApplication.line_items).selectinload(PayAppLineItem.sov_line_item),
            )
            .order_by(PayApplication.pay_app_number.asc())
            .execution_options(populate_existing=True)
        )
        if status is not None:
            query = query.where(PayApplication.status == status.value)

        result = await db.execute(query)
        pay_apps = list(result.scalars().all())

        logger.debug("Recuperati %d SAL per il progetto %s", len(pay_apps), project_id)
        return pay_apps

    async def next_number(self, db: AsyncSession, project_id: uuid.UUID) -> int:
        """
        Prossimo numero SAL del progetto: massimo esistente + 1 (1 se nessuno).
        """
        max_number = await db.scalar(
            select(func.max(PayApplication.pay_app_number)).where(
                PayApplication.project_id == project_id
            )
        )
        return (max_number or 0) + 1

    async def cumulative_certified(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
    ) -> dict[uuid.UUID, Decimal]:
        """
        Certificato cumulato per voce di computo nei SAL certificati o pagati.

        Per ogni riga vale il certificato del periodo se presente,
        altrimenti l'eseguito. I materiali in cantiere non concorrono.

        Returns:
            Dizionario sov_line_item_id → importo cumulato
        """
        query = (
            select(
                PayAppLineItem.sov_line_item_id,
                PayAppLineItem.work_completed_this_period,
                PayAppLineItem.certified_this_period,
            )
            .join(PayApplication, PayAppLineItem.pay_app_id == PayApplication.id)
            .where(
                PayApplication.project_id == project_id,
                PayApplication.status.in_([s.value for s in CERTIFIED_STATUSES]),
            )
        )
        result = await db.execute(query)

        cumulative: dict[uuid.UUID, Decimal] = {}
        for sov_id, this_period, certified in result.all():
            cumulative[sov_id] = cumulative.get(sov_id, ZERO) + resolve_certified(this_period, certified)
        return cumulative

    # -------------------------------------------------------------------
    # Creazione
    # -------------------------------------------------------------------

    async def create(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        data: PayApplicationCreate,
    ) -> PayApplication:
        """
        Crea un nuovo SAL in bozza con una riga per ogni voce del computo.

        Steps:
        1. Valida l'ordine delle date del periodo
        2. Acquisisce il lock di progetto
        3. Assegna o verifica il numero SAL
        4. Carica le voci del computo in ordine di sort_order
        5. Calcola il certificato cumulato dei periodi certificati o pagati
        6. Crea le righe con work_completed_previous = cumulato della voce
        7. Commit unico: in caso di errore non resta nessuna riga parziale

        Args:
            db: Sessione database
            project_id: UUID del progetto
            data: Dati del nuovo SAL

        Returns:
            PayApplication: Il SAL creato con le righe precompilate

        Raises:
            BusinessValidationError: Periodo non valido, numero duplicato o
                limite di numerazione raggiunto
            InvalidStateError: Conflitto di integrità non dovuto al numero SAL
        """
        # Step 1: Validazione periodo
        validate_period_order(data.period_from, data.period_to)

        # Step 2: Lock di progetto
        await self._acquire_project_lock(db, project_id)

        # Step 3: Numero SAL
        if data.pay_app_number is not None:
            pay_app_number = data.pay_app_number
            await self._check_unique_number(db, project_id, pay_app_number)
        else:
            pay_app_number = await self.next_number(db, project_id)
            if pay_app_number > self.settings.pay_app_number_limit:
                raise BusinessValidationError(
                    f"Limite numerazione SAL raggiunto per il progetto {project_id}",
                    extra={"limit": self.settings.pay_app_number_limit},
                )

        # Step 4: Voci del computo
        sov_result = await db.execute(
            select(ScheduleOfValuesLineItem)
            .where(ScheduleOfValuesLineItem.project_id == project_id)
            .order_by(
                ScheduleOfValuesLineItem.sort_order.asc(),
                ScheduleOfValuesLineItem.item_number.asc(),
            )
        )
        sov_items = list(sov_result.scalars().all())

        # Step 5: Cumulato dei periodi certificati o pagati
        cumulative = await self.cumulative_certified(db, project_id)

        pay_app = PayApplication(
            project_id=project_id,
            pay_app_number=pay_app_number,
            period_from=data.period_from,
            period_to=data.period_to,
            status=PayAppStatus.DRAFT.value,
            contractor_name=data.contractor_name,
            contract_number=data.contract_number,
            notes=data.notes,
        )

        # Step 6: Righe precompilate
        for line_number, sov_item in enumerate(sov_items, start=1):
            pay_app.line_items.append(
                PayAppLineItem(
                    sov_line_item=sov_item,
                    line_number=line_number,
                    work_completed_previous=cumulative.get(sov_item.id, ZERO),
                    work_completed_this_period=ZERO,
                    materials_stored=ZERO,
                )
            )
        db.add(pay_app)

        # Step 7: Commit atomico di testata e righe
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore di integrità creando il SAL n. %s: %s", pay_app_number, e)
            if await self._number_exists(db, project_id, pay_app_number):
                raise BusinessValidationError(
                    f"SAL n. {pay_app_number} già presente per il progetto",
                    extra={"pay_app_number": pay_app_number},
                )
            # Ad esempio una voce di computo eliminata nel frattempo
            raise InvalidStateError(
                f"Impossibile creare il SAL n. {pay_app_number}: il computo è cambiato durante l'operazione, riprovare",
                extra={"pay_app_number": pay_app_number},
            )
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Creato SAL n. %s (progetto %s) con %d righe",
            pay_app_number,
            project_id,
            len(sov_items),
        )
        return await self.get_by_id(db, pay_app.id)

    # -------------------------------------------------------------------
    # Modifiche
    # -------------------------------------------------------------------

    async def update(
        self,
        db: AsyncSession,
        pay_app_id: uuid.UUID,
        data: PayApplicationUpdate,
    ) -> PayApplication:
        """
        Aggiorna la testata del SAL.

        In bozza o inviato sono modificabili tutti i campi; una volta
        certificato o pagato solo le note amministrative.

        Raises:
            NotFoundError: Se il SAL non esiste
            InvalidStateError: Modifica di campi diversi dalle note su SAL certificato
            BusinessValidationError: Periodo non valido
        """
        pay_app = await self.get_by_id(db, pay_app_id)
        update_data = data.model_dump(exclude_unset=True)

        if PayAppStatus(pay_app.status) in CERTIFIED_STATUSES:
            locked_fields = sorted(field for field in update_data if field != "notes")
            if locked_fields:
                raise InvalidStateError(
                    f"SAL in stato '{pay_app.status}': sono modificabili solo le note",
                    extra={"fields": locked_fields},
                )

        for field in ("period_from", "period_to"):
            if field in update_data and update_data[field] is None:
                raise BusinessValidationError(f"Il campo {field} non può essere nullo")

        validate_period_order(
            update_data.get("period_from", pay_app.period_from),
            update_data.get("period_to", pay_app.period_to),
        )

        for field, value in update_data.items():
            setattr(pay_app, field, value)

        await db.commit()

        logger.info("Aggiornato SAL n. %s (%s)", pay_app.pay_app_number, pay_app_id)
        return await self.get_by_id(db, pay_app_id)

    async def update_line_item(
        self,
        db: AsyncSession,
        line_item_id: uuid.UUID,
        data: PayAppLineItemUpdate,
        pay_app_id: Optional[uuid.UUID] = None,
    ) -> PayAppLineItem:
        """
        Aggiorna una riga del SAL.

        Args:
            db: Sessione database
            line_item_id: UUID della riga
            data: Importi del periodo e override
            pay_app_id: UUID del SAL atteso (opzionale, per le API annidate)

        Returns:
            PayAppLineItem: La riga aggiornata

        Raises:
            NotFoundError: Se la riga non esiste (o non appartiene al SAL indicato)
            InvalidStateError: Se il SAL non è in bozza o inviato
            BusinessValidationError: Riga oltre l'importo contrattuale con policy "block"
        """
        result = await db.execute(
            select(PayAppLineItem)
            .where(PayAppLineItem.id == line_item_id)
            .options(selectinload(PayAppLineItem.sov_line_item))
        )
        line_item = result.scalar_one_or_none()

        if not line_item or (pay_app_id is not None and line_item.pay_app_id != pay_app_id):
            logger.warning("Riga SAL non trovata: %s", line_item_id)
            raise NotFoundError(f"Riga SAL con ID {line_item_id} non trovata")

        pay_app = await self.get_by_id(db, line_item.pay_app_id)
        self._check_editable_status(pay_app)

        update_data = data.model_dump(exclude_unset=True)

        # Controllo eccedenza sui valori risultanti, prima di modificare la riga
        view = PayAppLineItemView.from_line_item(line_item).model_copy(update=update_data)
        if is_overbilled(view):
            self._handle_overbilling(pay_app, [view.item_number])

        for field, value in update_data.items():
            setattr(line_item, field, value)

        await db.commit()

        logger.info(
            "Aggiornata riga %s del SAL n. %s: %s",
            line_item.line_number,
            pay_app.pay_app_number,
            update_data,
        )
        pay_app = await self.get_by_id(db, line_item.pay_app_id)
        return next(item for item in pay_app.line_items if item.id == line_item_id)

    async def transition(
        self,
        db: AsyncSession,
        pay_app_id: uuid.UUID,
        new_status: PayAppStatus,
        certified_by: Optional[str] = None,
        effective_date: Optional[datetime.date] = None,
    ) -> PayApplication:
        """
        Cambia lo stato di un SAL.

        Valida la transizione usando la matrice VALID_TRANSITIONS: solo in
        avanti e un passo alla volta. La certificazione congela le righe e
        rende i loro importi la base dei periodi successivi.

        Args:
            db: Sessione database
            pay_app_id: UUID del SAL
            new_status: Nuovo stato desiderato
            certified_by: Identità del certificatore (opzionale, per lo stato certified)
            effective_date: Data dell'evento (default: oggi)

        Returns:
            PayApplication: Il SAL con lo stato aggiornato

        Raises:
            NotFoundError: Se il SAL non esiste
            InvalidTransitionError: Se la transizione non è consentita
            BusinessValidationError: Certificazione con righe oltre l'importo
                contrattuale e policy "block"
        """
        pay_app = await self.get_by_id(db, pay_app_id)

        current_status = PayAppStatus(pay_app.status)
        new_status = PayAppStatus(new_status)

        if new_status not in VALID_TRANSITIONS.get(current_status, []):
            logger.warning(
                "Transizione non consentita per il SAL n. %s: %s -> %s",
                pay_app.pay_app_number,
                current_status.value,
                new_status.value,
            )
            raise InvalidTransitionError(
                f"Transizione da '{current_status.value}' a '{new_status.value}' non consentita",
                extra={"from": current_status.value, "to": new_status.value},
            )

        effective_date = effective_date or datetime.date.today()

        if new_status == PayAppStatus.SUBMITTED:
            pay_app.submitted_date = effective_date

        elif new_status == PayAppStatus.CERTIFIED:
            overbilled = find_overbilled_items(
                PayAppLineItemView.from_line_item(item) for item in pay_app.line_items
            )
            if overbilled:
                self._handle_overbilling(pay_app, [item.item_number for item in overbilled])

            # La certificazione cambia la base dei periodi successivi
            await self._acquire_project_lock(db, pay_app.project_id)
            pay_app.certified_date = effective_date
            pay_app.certified_by = (certified_by or "").strip() or None

        pay_app.status = new_status.value
        await db.commit()

        logger.info(
            "Cambiato stato SAL n. %s (progetto %s): %s -> %s",
            pay_app.pay_app_number,
            pay_app.project_id,
            current_status.value,
            new_status.value,
        )
        return await self.get_by_id(db, pay_app_id)

    async def delete(self, db: AsyncSession, pay_app_id: uuid.UUID) -> None:
        """
        Elimina un SAL in bozza con le sue righe.

        Raises:
            NotFoundError: Se il SAL non esiste
            InvalidStateError: Se il SAL non è in bozza
        """
        pay_app = await self.get_by_id(db, pay_app_id)

        if PayAppStatus(pay_app.status) != PayAppStatus.DRAFT:
            raise InvalidStateError(
                f"Solo i SAL in bozza possono essere eliminati (stato attuale: '{pay_app.status}')"
            )

        pay_app_number = pay_app.pay_app_number
        await db.delete(pay_app)
        await db.commit()

        logger.info("Eliminato SAL n. %s (%s)", pay_app_number, pay_app_id)

    # -------------------------------------------------------------------
    # Totali e riepiloghi
    # -------------------------------------------------------------------

    async def get_totals(self, db: AsyncSession, pay_app_id: uuid.UUID) -> PayAppTotals:
        """Totali del periodo (prospetto G702) calcolati dal motore."""
        pay_app = await self.get_by_id(db, pay_app_id)
        return compute_totals(PayAppLineItemView.from_line_item(item) for item in pay_app.line_items)

    async def summary(self, db: AsyncSession, project_id: uuid.UUID) -> ProjectBillingSummary:
        """
        Riepilogo della fatturazione del progetto.

        Conteggi per stato e, sui SAL certificati o pagati, certificato e
        ritenute cumulate.
        """
        pay_apps = await self.list_by_project(db, project_id)

        counts = {status: 0 for status in PayAppStatus}
        cumulative_certified = ZERO
        cumulative_retainage = ZERO

        for pay_app in pay_apps:
            status = PayAppStatus(pay_app.status)
            counts[status] += 1
            if status in CERTIFIED_STATUSES:
                totals = compute_totals(
                    PayAppLineItemView.from_line_item(item) for item in pay_app.line_items
                )
                cumulative_certified += totals.certified_this_period
                cumulative_retainage += totals.retainage_held

        return ProjectBillingSummary(
            project_id=project_id,
            total_pay_apps=len(pay_apps),
            draft_count=counts[PayAppStatus.DRAFT],
            submitted_count=counts[PayAppStatus.SUBMITTED],
            certified_count=counts[PayAppStatus.CERTIFIED],
            paid_count=counts[PayAppStatus.PAID],
            certified_to_date=counts[PayAppStatus.CERTIFIED] + counts[PayAppStatus.PAID],
            cumulative_certified=cumulative_certified,
            cumulative_retainage=cumulative_retainage,
            latest_pay_app_number=pay_apps[-1].pay_app_number if pay_apps else None,
        )

    # -------------------------------------------------------------------
    # Metodi interni
    # -------------------------------------------------------------------

    async def _number_exists(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        pay_app_number: int,
    ) -> bool:
        existing = await db.scalar(
            select(PayApplication.id).where(
                PayApplication.project_id == project_id,
                PayApplication.pay_app_number == pay_app_number,
            )
        )
        return existing is not None

    async def _check_unique_number(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        pay_app_number: int,
    ) -> None:
        """Verifica che il numero SAL non sia già usato nel progetto."""
        if await self._number_exists(db, project_id, pay_app_number):
            raise BusinessValidationError(
                f"SAL n. {pay_app_number} già presente per il progetto",
                extra={"pay_app_number": pay_app_number},
            )

    def _handle_overbilling(self, pay_app: PayApplication, item_numbers: list[str]) -> None:
        """
        Applica la policy sulle righe oltre l'importo contrattuale.

        Raises:
            BusinessValidationError: Con policy "block"
        """
        if self.settings.blocks_overbilling:
            logger.warning(
                "SAL n. %s rifiutato: voci oltre l'importo contrattuale %s",
                pay_app.pay_app_number,
                item_numbers,
            )
            raise BusinessValidationError(
                "L'eseguito a oggi supera l'importo contrattuale per le voci: "
                + ", ".join(item_numbers),
                error_code="OVERBILLED_LINE_ITEM",
                extra={"item_numbers": item_numbers},
            )
        logger.warning(
            "SAL n. %s: voci oltre l'importo contrattuale %s",
            pay_app.pay_app_number,
            item_numbers,
        )

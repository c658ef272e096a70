"""
Tests for ScheduleOfValuesService.

Validation, automatic numbering, ordering, protected deletion
and the weighted retainage summary.
"""

import uuid
from decimal import Decimal

import pydantic
import pytest
from sqlalchemy import func, select

from conftest import add_sov_item, advance_to, make_pay_app_data
from progress_billing.core.exceptions import (
    BusinessValidationError,
    InvalidStateError,
    NotFoundError,
    ReferencedEntityError,
)
from progress_billing.models import ScheduleOfValuesLineItem
from progress_billing.schemas.pay_application import PayAppLineItemUpdate, PayAppStatus
from progress_billing.schemas.schedule_of_values import SOVLineItemCreate, SOVLineItemUpdate
from progress_billing.services.totals_engine import PayAppLineItemView, compute_totals


# ============================================================
# Tests per la creazione
# ============================================================


class TestCreateSOVItem:
    """Tests for SOV item creation."""

    @pytest.mark.asyncio
    async def test_create_assigns_defaults(self, db_session, sov_service, project_id):
        """Test numero voce, ritenuta e ordine assegnati automaticamente."""
        first = await sov_service.upsert(
            db_session, project_id, SOVLineItemCreate(scheduled_value=Decimal("1000.00"))
        )
        second = await sov_service.upsert(
            db_session, project_id, SOVLineItemCreate(scheduled_value=Decimal("2000.00"))
        )

        assert first.item_number == "01"
        assert second.item_number == "02"
        assert first.retainage_pct == Decimal("10")
        assert first.sort_order == 0
        assert second.sort_order == 1

    @pytest.mark.asyncio
    async def test_create_keeps_explicit_values(self, db_session, sov_service, project_id):
        """Test i valori forniti non vengono sovrascritti."""
        item = await sov_service.upsert(
            db_session,
            project_id,
            SOVLineItemCreate(
                item_number=" 03.2 ",
                description="Impianto elettrico",
                scheduled_value=Decimal("45000.00"),
                retainage_pct=Decimal("5"),
                sort_order=7,
            ),
        )

        assert item.item_number == "03.2"
        assert item.retainage_pct == Decimal("5")
        assert item.sort_order == 7
        assert item.description == "Impianto elettrico"

    @pytest.mark.asyncio
    async def test_auto_number_skips_used_numbers(self, db_session, sov_service, project_id):
        """Test il numero automatico salta quelli già occupati."""
        await add_sov_item(db_session, project_id, "02", Decimal("100.00"))

        item = await sov_service.upsert(
            db_session, project_id, SOVLineItemCreate(scheduled_value=Decimal("100.00"))
        )

        assert item.item_number == "03"

    @pytest.mark.asyncio
    async def test_duplicate_item_number_rejected(self, db_session, sov_service, project_id):
        """Test numero voce duplicato nello stesso progetto."""
        await sov_service.upsert(
            db_session, project_id, SOVLineItemCreate(item_number="01", scheduled_value=Decimal("1.00"))
        )

        with pytest.raises(BusinessValidationError):
            await sov_service.upsert(
                db_session, project_id, SOVLineItemCreate(item_number="01", scheduled_value=Decimal("2.00"))
            )

    @pytest.mark.asyncio
    async def test_same_item_number_in_other_project(self, db_session, sov_service, project_id):
        """Test lo stesso numero voce è ammesso in progetti diversi."""
        await sov_service.upsert(
            db_session, project_id, SOVLineItemCreate(item_number="01", scheduled_value=Decimal("1.00"))
        )
        other = await sov_service.upsert(
            db_session, uuid.uuid4(), SOVLineItemCreate(item_number="01", scheduled_value=Decimal("1.00"))
        )

        assert other.item_number == "01"

    def test_schema_rejects_negative_scheduled_value(self):
        """Test importo contrattuale negativo rifiutato dallo schema."""
        with pytest.raises(pydantic.ValidationError):
            SOVLineItemCreate(scheduled_value=Decimal("-0.01"))

    @pytest.mark.parametrize("retainage", ["-1", "100.01", "150"])
    def test_schema_rejects_retainage_out_of_range(self, retainage):
        """Test ritenuta fuori dall'intervallo 0-100 rifiutata dallo schema."""
        with pytest.raises(pydantic.ValidationError):
            SOVLineItemCreate(scheduled_value=Decimal("10"), retainage_pct=Decimal(retainage))

    @pytest.mark.asyncio
    async def test_service_rejects_unvalidated_negative_amount(self, db_session, sov_service, project_id):
        """Test il service valida anche dati non passati dallo schema."""
        data = SOVLineItemCreate.model_construct(
            item_number="01",
            description="",
            scheduled_value=Decimal("-5"),
            retainage_pct=None,
            sort_order=None,
        )

        with pytest.raises(BusinessValidationError):
            await sov_service.create(db_session, project_id, data)

        assert await db_session.scalar(select(func.count(ScheduleOfValuesLineItem.id))) == 0


# ============================================================
# Tests per lettura e aggiornamento
# ============================================================


class TestListAndUpdateSOVItem:
    """Tests for listing and updating SOV items."""

    @pytest.mark.asyncio
    async def test_list_orders_by_sort_order_then_item_number(self, db_session, sov_service, project_id):
        """Test ordinamento per sort_order e, a parità, per numero voce."""
        await add_sov_item(db_session, project_id, "A", Decimal("1"), sort_order=2)
        await add_sov_item(db_session, project_id, "C", Decimal("1"), sort_order=1)
        await add_sov_item(db_session, project_id, "B", Decimal("1"), sort_order=1)
        await add_sov_item(db_session, uuid.uuid4(), "Z", Decimal("1"), sort_order=0)

        items = await sov_service.list_by_project(db_session, project_id)

        assert [item.item_number for item in items] == ["B", "C", "A"]

    @pytest.mark.asyncio
    async def test_update_changes_only_given_fields(self, db_session, sov_service, single_item_sov):
        """Test aggiornamento parziale."""
        item = await sov_service.update(
            db_session,
            single_item_sov.id,
            SOVLineItemUpdate(scheduled_value=Decimal("120000.00")),
        )

        assert item.scheduled_value == Decimal("120000.00")
        assert item.retainage_pct == Decimal("10")
        assert item.item_number == "01"

    @pytest.mark.asyncio
    async def test_update_to_duplicate_number_rejected(self, db_session, sov_service, three_item_sov):
        """Test rinumerazione su un numero già usato."""
        site_work = three_item_sov[0]

        with pytest.raises(BusinessValidationError):
            await sov_service.update(db_session, site_work.id, SOVLineItemUpdate(item_number="02"))

    @pytest.mark.asyncio
    async def test_upsert_with_id_of_other_project(self, db_session, sov_service, single_item_sov):
        """Test upsert su una voce di un altro progetto."""
        with pytest.raises(NotFoundError):
            await sov_service.upsert(
                db_session,
                uuid.uuid4(),
                SOVLineItemUpdate(description="x"),
                item_id=single_item_sov.id,
            )

    @pytest.mark.asyncio
    async def test_upsert_with_id_updates(self, db_session, sov_service, project_id, single_item_sov):
        """Test upsert con id esistente aggiorna la voce."""
        item = await sov_service.upsert(
            db_session,
            project_id,
            SOVLineItemUpdate(retainage_pct=Decimal("5")),
            item_id=single_item_sov.id,
        )

        assert item.id == single_item_sov.id
        assert item.retainage_pct == Decimal("5")

    @pytest.mark.asyncio
    async def test_get_unknown_item(self, db_session, sov_service):
        """Test voce inesistente."""
        with pytest.raises(NotFoundError):
            await sov_service.get_by_id(db_session, uuid.uuid4())


# ============================================================
# Tests per le voci già certificate
# ============================================================


class TestCertifiedSOVItem:
    """Tests for amount edits on items billed in certified periods."""

    async def _bill_and_advance(self, db_session, pay_app_service, project_id, status):
        """SAL n. 1 con 20.000 nel periodo, portato allo stato indicato."""
        pay_app = await pay_app_service.create(db_session, project_id, make_pay_app_data())
        await pay_app_service.update_line_item(
            db_session,
            pay_app.line_items[0].id,
            PayAppLineItemUpdate(work_completed_this_period=Decimal("20000.00")),
        )
        return await advance_to(pay_app_service, db_session, pay_app.id, status)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [PayAppStatus.CERTIFIED, PayAppStatus.PAID])
    @pytest.mark.parametrize(
        "changes",
        [
            {"retainage_pct": Decimal("50")},
            {"scheduled_value": Decimal("1000.00")},
            {"retainage_pct": Decimal("50"), "scheduled_value": Decimal("1000.00")},
        ],
    )
    async def test_amount_change_rejected(
        self, db_session, sov_service, pay_app_service, project_id, single_item_sov, status, changes
    ):
        """Test importo e ritenuta bloccati: i totali del SAL certificato non cambiano."""
        pay_app = await self._bill_and_advance(db_session, pay_app_service, project_id, status)

        with pytest.raises(InvalidStateError) as exc_info:
            await sov_service.update(db_session, single_item_sov.id, SOVLineItemUpdate(**changes))

        assert exc_info.value.extra["fields"] == sorted(changes)

        pay_app = await pay_app_service.get_by_id(db_session, pay_app.id)
        totals = compute_totals(PayAppLineItemView.from_line_item(line) for line in pay_app.line_items)
        assert totals.retainage_held == Decimal("2000.00")
        assert totals.net_payment == Decimal("18000.00")
        assert totals.pct_complete == Decimal("20.00")

        item = await sov_service.get_by_id(db_session, single_item_sov.id)
        assert item.scheduled_value == Decimal("100000.00")
        assert item.retainage_pct == Decimal("10.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [PayAppStatus.DRAFT, PayAppStatus.SUBMITTED])
    async def test_amount_change_allowed_before_certification(
        self, db_session, sov_service, pay_app_service, project_id, single_item_sov, status
    ):
        """Test in bozza o inviato l'importo della voce resta modificabile."""
        await self._bill_and_advance(db_session, pay_app_service, project_id, status)

        item = await sov_service.update(
            db_session, single_item_sov.id, SOVLineItemUpdate(retainage_pct=Decimal("5"))
        )

        assert item.retainage_pct == Decimal("5")

    @pytest.mark.asyncio
    async def test_descriptive_fields_editable_after_certification(
        self, db_session, sov_service, pay_app_service, project_id, single_item_sov
    ):
        """Test descrizione, ordine e importo invariato accettati su voce certificata."""
        await self._bill_and_advance(db_session, pay_app_service, project_id, PayAppStatus.CERTIFIED)

        item = await sov_service.update(
            db_session,
            single_item_sov.id,
            SOVLineItemUpdate(
                description="Opere strutturali in c.a.",
                sort_order=3,
                scheduled_value=Decimal("100000"),
            ),
        )

        assert item.description == "Opere strutturali in c.a."
        assert item.sort_order == 3
        assert item.scheduled_value == Decimal("100000.00")


# ============================================================
# Tests per l'eliminazione
# ============================================================


class TestDeleteSOVItem:
    """Tests for protected deletion."""

    @pytest.mark.asyncio
    async def test_delete_unreferenced_item(self, db_session, sov_service, project_id, single_item_sov):
        """Test eliminazione di una voce mai usata."""
        await sov_service.delete(db_session, single_item_sov.id)

        assert await sov_service.list_by_project(db_session, project_id) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [PayAppStatus.DRAFT, PayAppStatus.SUBMITTED, PayAppStatus.CERTIFIED, PayAppStatus.PAID],
    )
    async def test_delete_referenced_item_rejected(
        self, db_session, sov_service, pay_app_service, project_id, single_item_sov, status
    ):
        """Test voce usata in un SAL, in qualunque stato, non eliminabile."""
        pay_app = await pay_app_service.create(db_session, project_id, make_pay_app_data())
        await advance_to(pay_app_service, db_session, pay_app.id, status)

        with pytest.raises(ReferencedEntityError):
            await sov_service.delete(db_session, single_item_sov.id)

        assert len(await sov_service.list_by_project(db_session, project_id)) == 1

    @pytest.mark.asyncio
    async def test_delete_unknown_item(self, db_session, sov_service):
        """Test eliminazione di una voce inesistente."""
        with pytest.raises(NotFoundError):
            await sov_service.delete(db_session, uuid.uuid4())


# ============================================================
# Tests per il riepilogo
# ============================================================


class TestSOVSummary:
    """Tests for the SOV summary."""

    @pytest.mark.asyncio
    async def test_weighted_average_retainage(self, db_session, sov_service, project_id):
        """Test ritenuta media ponderata sugli importi."""
        await add_sov_item(db_session, project_id, "01", Decimal("100000.00"), Decimal("10.00"))
        await add_sov_item(db_session, project_id, "02", Decimal("50000.00"), Decimal("5.00"))

        summary = await sov_service.summary(db_session, project_id)

        assert summary.item_count == 2
        assert summary.total_scheduled_value == Decimal("150000.00")
        assert summary.average_retainage_pct == Decimal("8.33")

    @pytest.mark.asyncio
    async def test_empty_project_uses_default_retainage(self, db_session, sov_service, project_id):
        """Test progetto senza voci: ritenuta di default."""
        summary = await sov_service.summary(db_session, project_id)

        assert summary.item_count == 0
        assert summary.total_scheduled_value == Decimal("0")
        assert summary.average_retainage_pct == Decimal("10")

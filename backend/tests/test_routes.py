"""
Tests for the v1 API routers.

Services are replaced with AsyncMock: these tests cover routing,
status codes, error mapping and camelCase serialization.
"""

import datetime
import uuid
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from progress_billing.api.v1 import api_v1_router
from progress_billing.core.database import get_db
from progress_billing.core.exceptions import (
    BusinessValidationError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ReferencedEntityError,
)
from progress_billing.main import register_exception_handlers
from progress_billing.schemas.pay_application import PayAppStatus
from progress_billing.schemas.schedule_of_values import SOVSummary
from progress_billing.services.totals_engine import PayAppTotals

PAY_APPS = "progress_billing.api.v1.pay_applications.pay_app_service"
SOV = "progress_billing.api.v1.schedule_of_values.sov_service"
WAIVERS = "progress_billing.api.v1.lien_waivers.lien_waiver_service"


async def override_get_db():
    yield None


@pytest.fixture
def app():
    """App di test con i router v1 e gli exception handler."""
    test_app = FastAPI()
    register_exception_handlers(test_app)
    test_app.include_router(api_v1_router)
    test_app.dependency_overrides[get_db] = override_get_db
    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)


def make_sov_item(**overrides):
    """Voce di computo simile a un oggetto ORM."""
    now = datetime.datetime(2024, 1, 1, 9, 0, tzinfo=datetime.timezone.utc)
    values = dict(
        id=uuid.uuid4(),
        project_id=uuid.uuid4(),
        item_number="01",
        description="Opere strutturali",
        scheduled_value=Decimal("100000.00"),
        retainage_pct=Decimal("10.00"),
        sort_order=0,
        created_at=now,
        updated_at=now,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def make_pay_app(status="draft", this_period="20000.00"):
    """SAL con una riga, simile a un oggetto ORM con relazioni caricate."""
    now = datetime.datetime(2024, 2, 1, 9, 0, tzinfo=datetime.timezone.utc)
    pay_app_id = uuid.uuid4()
    sov_item = make_sov_item()
    line_item = SimpleNamespace(
        id=uuid.uuid4(),
        pay_app_id=pay_app_id,
        sov_line_item_id=sov_item.id,
        line_number=1,
        sov_line_item=sov_item,
        work_completed_previous=Decimal("0.00"),
        work_completed_this_period=Decimal(this_period),
        materials_stored=Decimal("0.00"),
        certified_this_period=None,
        retainage_pct_override=None,
    )
    return SimpleNamespace(
        id=pay_app_id,
        project_id=sov_item.project_id,
        pay_app_number=1,
        period_from=datetime.date(2024, 1, 1),
        period_to=datetime.date(2024, 1, 31),
        status=status,
        contractor_name="Edilizia Verdi S.r.l.",
        contract_number="C-2024-01",
        submitted_date=None,
        certified_date=None,
        certified_by=None,
        notes=None,
        created_at=now,
        updated_at=now,
        line_items=[line_item],
    )


# ============================================================
# Tests per i SAL
# ============================================================


class TestPayApplicationRoutes:
    """Tests for /pay-applications endpoints."""

    def test_get_pay_application_serializes_camel_case(self, client):
        """Test dettaglio SAL con totali e righe in camelCase."""
        pay_app = make_pay_app()

        with patch(PAY_APPS) as service:
            service.get_by_id = AsyncMock(return_value=pay_app)
            response = client.get(f"/api/v1/pay-applications/{pay_app.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["payAppNumber"] == 1
        assert body["status"] == "draft"
        assert Decimal(body["totals"]["retainageHeld"]) == Decimal("2000.00")
        assert Decimal(body["totals"]["netPayment"]) == Decimal("18000.00")
        assert Decimal(body["totals"]["pctComplete"]) == Decimal("20.00")
        assert body["lineItems"][0]["itemNumber"] == "01"
        assert body["lineItems"][0]["progress"]["isOverbilled"] is False
        assert body["overbilledItems"] == []

    def test_get_pay_application_reports_overbilled_items(self, client):
        """Test righe oltre l'importo contrattuale nella risposta."""
        pay_app = make_pay_app(this_period="100500.00")

        with patch(PAY_APPS) as service:
            service.get_by_id = AsyncMock(return_value=pay_app)
            body = client.get(f"/api/v1/pay-applications/{pay_app.id}").json()

        assert len(body["overbilledItems"]) == 1
        assert Decimal(body["overbilledItems"][0]["excess"]) == Decimal("500.00")

    def test_get_unknown_pay_application(self, client):
        """Test SAL inesistente: 404."""
        with patch(PAY_APPS) as service:
            service.get_by_id = AsyncMock(side_effect=NotFoundError("SAL non trovato"))
            response = client.get(f"/api/v1/pay-applications/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"

    def test_create_pay_application(self, client):
        """Test creazione: 201 e dati passati al service."""
        pay_app = make_pay_app(this_period="0.00")
        project_id = pay_app.project_id

        with patch(PAY_APPS) as service:
            service.create = AsyncMock(return_value=pay_app)
            response = client.post(
                f"/api/v1/projects/{project_id}/pay-applications",
                json={"period_from": "2024-01-01", "period_to": "2024-01-31"},
            )

        assert response.status_code == 201
        args = service.create.await_args.args
        assert args[1] == project_id
        assert args[2].pay_app_number is None

    def test_create_with_inverted_period(self, client):
        """Test periodo non valido: 422 senza chiamare il service."""
        with patch(PAY_APPS) as service:
            service.create = AsyncMock()
            response = client.post(
                f"/api/v1/projects/{uuid.uuid4()}/pay-applications",
                json={"period_from": "2024-02-01", "period_to": "2024-01-01"},
            )

        assert response.status_code == 422
        service.create.assert_not_awaited()

    def test_create_duplicate_number(self, client):
        """Test numero duplicato: 422 con codice di errore di business."""
        with patch(PAY_APPS) as service:
            service.create = AsyncMock(side_effect=BusinessValidationError("SAL n. 1 già presente"))
            response = client.post(
                f"/api/v1/projects/{uuid.uuid4()}/pay-applications",
                json={"pay_app_number": 1, "period_from": "2024-01-01", "period_to": "2024-01-31"},
            )

        assert response.status_code == 422
        assert response.json()["error_code"] == "BUSINESS_VALIDATION_ERROR"

    def test_invalid_transition(self, client):
        """Test transizione fuori sequenza: 409 INVALID_TRANSITION."""
        with patch(PAY_APPS) as service:
            service.transition = AsyncMock(
                side_effect=InvalidTransitionError(
                    "Transizione da 'draft' a 'paid' non consentita",
                    extra={"from": "draft", "to": "paid"},
                )
            )
            response = client.post(
                f"/api/v1/pay-applications/{uuid.uuid4()}/transition",
                json={"status": "paid"},
            )

        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_TRANSITION"
        assert response.json()["extra"] == {"from": "draft", "to": "paid"}

    def test_certify_without_certifier(self, client):
        """Test certificazione senza certificatore: 200, certified_by None."""
        pay_app = make_pay_app(status="certified")

        with patch(PAY_APPS) as service:
            service.transition = AsyncMock(return_value=pay_app)
            response = client.post(
                f"/api/v1/pay-applications/{pay_app.id}/transition",
                json={"status": "certified"},
            )

        assert response.status_code == 200
        assert response.json()["status"] == "certified"
        assert response.json()["certifiedBy"] is None
        assert service.transition.await_args.kwargs["certified_by"] is None

    def test_certify_passes_certifier(self, client):
        """Test certificazione: certificatore e data passati al service."""
        pay_app = make_pay_app(status="certified")

        with patch(PAY_APPS) as service:
            service.transition = AsyncMock(return_value=pay_app)
            response = client.post(
                f"/api/v1/pay-applications/{pay_app.id}/transition",
                json={"status": "certified", "certified_by": "D.L. Rossi", "effective_date": "2024-02-10"},
            )

        assert response.status_code == 200
        call = service.transition.await_args
        assert call.args[2] == PayAppStatus.CERTIFIED
        assert call.kwargs["certified_by"] == "D.L. Rossi"
        assert call.kwargs["effective_date"] == datetime.date(2024, 2, 10)

    def test_update_line_on_certified_pay_app(self, client):
        """Test modifica riga su SAL certificato: 409 INVALID_STATE."""
        with patch(PAY_APPS) as service:
            service.update_line_item = AsyncMock(side_effect=InvalidStateError("SAL certificato"))
            response = client.patch(
                f"/api/v1/pay-applications/{uuid.uuid4()}/line-items/{uuid.uuid4()}",
                json={"work_completed_this_period": "1000.00"},
            )

        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_STATE"

    def test_update_line_item(self, client):
        """Test modifica riga: risposta con avanzamento calcolato."""
        pay_app = make_pay_app(this_period="30000.00")
        line_item = pay_app.line_items[0]
        line_item.retainage_pct_override = Decimal("5.00")

        with patch(PAY_APPS) as service:
            service.update_line_item = AsyncMock(return_value=line_item)
            response = client.patch(
                f"/api/v1/pay-applications/{pay_app.id}/line-items/{line_item.id}",
                json={"work_completed_this_period": "30000.00", "retainage_pct_override": "5"},
            )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["progress"]["retainageAmount"]) == Decimal("1500.00")
        assert service.update_line_item.await_args.kwargs["pay_app_id"] == pay_app.id

    def test_get_totals(self, client):
        """Test totali del periodo in camelCase."""
        totals = PayAppTotals(
            scheduled_value=Decimal("100000.00"),
            certified_this_period=Decimal("20000.00"),
            retainage_held=Decimal("2000.00"),
            total_earned=Decimal("20000.00"),
            net_payment=Decimal("18000.00"),
            pct_complete=Decimal("20.00"),
        )

        with patch(PAY_APPS) as service:
            service.get_totals = AsyncMock(return_value=totals)
            response = client.get(f"/api/v1/pay-applications/{uuid.uuid4()}/totals")

        assert response.status_code == 200
        assert Decimal(response.json()["netPayment"]) == Decimal("18000.00")
        assert "net_payment" not in response.json()

    def test_next_number(self, client):
        """Test prossimo numero SAL."""
        project_id = uuid.uuid4()

        with patch(PAY_APPS) as service:
            service.next_number = AsyncMock(return_value=4)
            response = client.get(f"/api/v1/projects/{project_id}/pay-applications/next-number")

        assert response.status_code == 200
        assert response.json() == {"projectId": str(project_id), "nextNumber": 4}

    def test_list_with_status_filter(self, client):
        """Test filtro per stato passato al service."""
        with patch(PAY_APPS) as service:
            service.list_by_project = AsyncMock(return_value=[make_pay_app(status="submitted")])
            response = client.get(f"/api/v1/projects/{uuid.uuid4()}/pay-applications?status=submitted")

        assert response.status_code == 200
        assert len(response.json()) == 1
        assert service.list_by_project.await_args.kwargs["status"] == PayAppStatus.SUBMITTED

    def test_delete_pay_application(self, client):
        """Test eliminazione SAL in bozza: 204."""
        with patch(PAY_APPS) as service:
            service.delete = AsyncMock(return_value=None)
            response = client.delete(f"/api/v1/pay-applications/{uuid.uuid4()}")

        assert response.status_code == 204


# ============================================================
# Tests per il computo e le liberatorie
# ============================================================


class TestSOVAndLienWaiverRoutes:
    """Tests for /sov and /lien-waivers endpoints."""

    def test_list_sov_items(self, client):
        """Test elenco voci in camelCase."""
        item = make_sov_item()

        with patch(SOV) as service:
            service.list_by_project = AsyncMock(return_value=[item])
            response = client.get(f"/api/v1/projects/{item.project_id}/sov")

        assert response.status_code == 200
        body = response.json()
        assert body[0]["itemNumber"] == "01"
        assert Decimal(body[0]["scheduledValue"]) == Decimal("100000.00")

    def test_create_sov_item_rejects_negative_amount(self, client):
        """Test importo negativo: 422."""
        with patch(SOV) as service:
            service.upsert = AsyncMock()
            response = client.post(
                f"/api/v1/projects/{uuid.uuid4()}/sov",
                json={"scheduled_value": "-100"},
            )

        assert response.status_code == 422
        service.upsert.assert_not_awaited()

    def test_create_sov_item(self, client):
        """Test creazione voce: 201."""
        item = make_sov_item()

        with patch(SOV) as service:
            service.upsert = AsyncMock(return_value=item)
            response = client.post(
                f"/api/v1/projects/{item.project_id}/sov",
                json={"description": "Opere strutturali", "scheduled_value": "100000.00"},
            )

        assert response.status_code == 201
        assert response.json()["id"] == str(item.id)

    def test_delete_referenced_sov_item(self, client):
        """Test eliminazione voce usata in un SAL: 409 REFERENCED_ENTITY."""
        with patch(SOV) as service:
            service.delete = AsyncMock(side_effect=ReferencedEntityError("Voce usata in un SAL"))
            response = client.delete(f"/api/v1/sov/{uuid.uuid4()}")

        assert response.status_code == 409
        assert response.json()["error_code"] == "REFERENCED_ENTITY"

    def test_update_certified_sov_amount(self, client):
        """Test modifica importo di una voce certificata: 409 INVALID_STATE."""
        with patch(SOV) as service:
            service.update = AsyncMock(
                side_effect=InvalidStateError(
                    "Voce in un SAL certificato", extra={"fields": ["retainage_pct"]}
                )
            )
            response = client.put(f"/api/v1/sov/{uuid.uuid4()}", json={"retainage_pct": "50"})

        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_STATE"
        assert response.json()["extra"] == {"fields": ["retainage_pct"]}

    def test_sov_summary(self, client):
        """Test riepilogo computo."""
        project_id = uuid.uuid4()
        summary = SOVSummary(
            project_id=project_id,
            item_count=2,
            total_scheduled_value=Decimal("150000.00"),
            average_retainage_pct=Decimal("8.33"),
        )

        with patch(SOV) as service:
            service.summary = AsyncMock(return_value=summary)
            response = client.get(f"/api/v1/projects/{project_id}/sov/summary")

        assert response.status_code == 200
        assert response.json()["itemCount"] == 2

    def test_record_waiver_on_draft(self, client):
        """Test liberatoria su SAL in bozza: 409 INVALID_STATE."""
        with patch(WAIVERS) as service:
            service.record = AsyncMock(side_effect=InvalidStateError("SAL in bozza"))
            response = client.post(
                f"/api/v1/pay-applications/{uuid.uuid4()}/lien-waivers",
                json={"waiver_type": "conditional_progress", "amount": "18000.00"},
            )

        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_STATE"

    def test_record_waiver(self, client):
        """Test registrazione liberatoria: 201 in camelCase."""
        pay_app_id = uuid.uuid4()
        waiver = SimpleNamespace(
            id=uuid.uuid4(),
            pay_app_id=pay_app_id,
            waiver_type="unconditional_progress",
            amount=Decimal("18000.00"),
            through_date=datetime.date(2024, 1, 31),
            received_date=None,
            file_url=None,
            notes=None,
            created_at=datetime.datetime(2024, 2, 5, 10, 0, tzinfo=datetime.timezone.utc),
        )

        with patch(WAIVERS) as service:
            service.record = AsyncMock(return_value=waiver)
            response = client.post(
                f"/api/v1/pay-applications/{pay_app_id}/lien-waivers",
                json={"waiver_type": "unconditional_progress", "amount": "18000.00"},
            )

        assert response.status_code == 201
        body = response.json()
        assert body["waiverType"] == "unconditional_progress"
        assert body["payAppId"] == str(pay_app_id)
        assert body["throughDate"] == "2024-01-31"

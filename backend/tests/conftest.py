"""
Pytest configuration and fixtures for the progress billing tests.

Service tests run against an in-memory SQLite database (aiosqlite)
created from the SQLAlchemy metadata for every test.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from progress_billing.core.config import Settings
from progress_billing.models import Base, ScheduleOfValuesLineItem
from progress_billing.schemas.pay_application import PayApplicationCreate, PayAppStatus
from progress_billing.services.lien_waiver_service import LienWaiverService
from progress_billing.services.pay_application_service import PayApplicationService
from progress_billing.services.schedule_of_values_service import ScheduleOfValuesService


# ============================================================
# Fixtures per il database
# ============================================================


@pytest_asyncio.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Crea un database in memoria con lo schema completo."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


# ============================================================
# Fixtures per Settings e Service
# ============================================================


@pytest.fixture
def warn_settings() -> Settings:
    """Impostazioni con policy di eccedenza 'warn' (default)."""
    return Settings(_env_file=None, overbilling_policy="warn", default_retainage_pct=Decimal("10"))


@pytest.fixture
def block_settings() -> Settings:
    """Impostazioni con policy di eccedenza 'block'."""
    return Settings(_env_file=None, overbilling_policy="block", default_retainage_pct=Decimal("10"))


@pytest.fixture
def sov_service(warn_settings) -> ScheduleOfValuesService:
    return ScheduleOfValuesService(settings=warn_settings)


@pytest.fixture
def pay_app_service(warn_settings) -> PayApplicationService:
    return PayApplicationService(settings=warn_settings)


@pytest.fixture
def blocking_pay_app_service(block_settings) -> PayApplicationService:
    return PayApplicationService(settings=block_settings)


@pytest.fixture
def lien_waiver_service() -> LienWaiverService:
    return LienWaiverService()


# ============================================================
# Fixtures per i dati di progetto
# ============================================================


@pytest.fixture
def project_id() -> uuid.UUID:
    return uuid.uuid4()


async def add_sov_item(
    db: AsyncSession,
    project_id: uuid.UUID,
    item_number: str,
    scheduled_value: Decimal,
    retainage_pct: Decimal = Decimal("10.00"),
    sort_order: int = 0,
    description: str = "",
) -> ScheduleOfValuesLineItem:
    """Inserisce direttamente una voce di computo."""
    item = ScheduleOfValuesLineItem(
        project_id=project_id,
        item_number=item_number,
        description=description or f"Voce {item_number}",
        scheduled_value=scheduled_value,
        retainage_pct=retainage_pct,
        sort_order=sort_order,
    )
    db.add(item)
    await db.commit()
    return item


@pytest_asyncio.fixture()
async def single_item_sov(db_session, project_id) -> ScheduleOfValuesLineItem:
    """Computo con una sola voce da 100.000 e ritenuta 10%."""
    return await add_sov_item(
        db_session,
        project_id,
        item_number="01",
        scheduled_value=Decimal("100000.00"),
        retainage_pct=Decimal("10.00"),
        description="Opere strutturali",
    )


@pytest_asyncio.fixture()
async def three_item_sov(db_session, project_id) -> list[ScheduleOfValuesLineItem]:
    """Computo con tre voci inserite fuori ordine."""
    electrical = await add_sov_item(
        db_session, project_id, "03", Decimal("30000.00"), Decimal("5.00"), sort_order=2
    )
    site_work = await add_sov_item(
        db_session, project_id, "01", Decimal("50000.00"), Decimal("10.00"), sort_order=0
    )
    framing = await add_sov_item(
        db_session, project_id, "02", Decimal("20000.00"), Decimal("10.00"), sort_order=1
    )
    return [site_work, framing, electrical]


def make_pay_app_data(
    pay_app_number: Optional[int] = None,
    period_from: date = date(2024, 1, 1),
    period_to: date = date(2024, 1, 31),
    **kwargs,
) -> PayApplicationCreate:
    """Dati di creazione di un SAL."""
    return PayApplicationCreate(
        pay_app_number=pay_app_number,
        period_from=period_from,
        period_to=period_to,
        **kwargs,
    )


async def advance_to(
    service: PayApplicationService,
    db: AsyncSession,
    pay_app_id: uuid.UUID,
    target: PayAppStatus,
):
    """Porta un SAL in bozza fino allo stato indicato, un passo alla volta."""
    order = [PayAppStatus.SUBMITTED, PayAppStatus.CERTIFIED, PayAppStatus.PAID]
    pay_app = await service.get_by_id(db, pay_app_id)
    for status in order:
        if target == PayAppStatus.DRAFT:
            break
        pay_app = await service.transition(db, pay_app_id, status, certified_by="D.L. Rossi")
        if status == target:
            break
    return pay_app

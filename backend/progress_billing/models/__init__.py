"""
Modelli Database SQLAlchemy
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Import centralizzato di tutti i modelli per Alembic e usage generico.

Modelli:
- ScheduleOfValuesLineItem: Voci del computo contrattuale (Schedule of Values)
- PayApplication: Stati di avanzamento lavori (SAL) per periodo
- PayAppLineItem: Righe del SAL, una per voce di computo
- LienWaiver: Liberatorie associate a un SAL certificato o pagato
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from progress_billing.models.schedule_of_values import ScheduleOfValuesLineItem
from progress_billing.models.pay_application import PayApplication, PayAppLineItem
from progress_billing.models.lien_waiver import LienWaiver

# Esportazione di tutti i modelli per Alembic
__all__ = [
    "Base",
    "ScheduleOfValuesLineItem",
    "PayApplication",
    "PayAppLineItem",
    "LienWaiver",
]

"""
API v1 Routes
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from progress_billing.api.v1 import lien_waivers, pay_applications, schedule_of_values

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(schedule_of_values.router)
api_v1_router.include_router(pay_applications.router)
api_v1_router.include_router(lien_waivers.router)

# Esportazione
__all__ = ["api_v1_router"]

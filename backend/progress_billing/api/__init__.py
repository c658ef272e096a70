"""
API Routes
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Modulo per l'aggregazione dei router versionati.
"""

from progress_billing.api.v1 import api_v1_router

# Esportazione router
__all__ = ["api_v1_router"]

import asyncio
import sys
import os

# Aggiungi backend/ alla PYTHONPATH per importare progress_billing.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from progress_billing.core.database import engine
from progress_billing.models import Base

async def reset():
    print("Connessione al database, eliminazione tabelle SAL...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        print("Tabelle eliminate. Creazione computo, SAL, righe e liberatorie...")
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("Database resettato con successo!")

if __name__ == "__main__":
    asyncio.run(reset())

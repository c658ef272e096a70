"""
Eccezioni Custom per l'applicazione.
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Definisce eccezioni specifiche del dominio per una gestione
centralizzata degli errori.

NOTA: BusinessValidationError è volutamente distinta da pydantic.ValidationError.
- pydantic.ValidationError: errori di formato/tipo nei dati di input (gestiti da FastAPI → 422)
- BusinessValidationError: violazioni delle regole di business logic (gestiti dal nostro handler → 422)
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "BusinessValidationError",
    "ValidationError",       # alias di BusinessValidationError
    "InvalidStateError",
    "InvalidTransitionError",
    "ReferencedEntityError",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Tutte le eccezioni custom ereditano da questa classe base.

    Attributes:
        status_code: HTTP status code da restituire al client
        error_code: Identificativo univoco dell'errore per il frontend
        detail: Messaggio di errore leggibile per l'utente
        extra: Dizionario con dati aggiuntivi per il frontend
    """

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """
    Eccezione sollevata quando una risorsa non viene trovata.

    Utilizzata quando un'entità cercata non esiste nel database.
    """

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Risorsa non trovata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Eccezione sollevata per violazioni delle regole di business logic.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    Esempi di utilizzo:
        - "Importo contrattuale negativo"
        - "Percentuale di ritenuta fuori dall'intervallo 0-100"
        - "La data di inizio periodo è successiva alla data di fine"
        - "Numero voce già presente nel computo del progetto"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validazione dati fallita",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


# Alias per compatibilità
ValidationError = BusinessValidationError


class InvalidStateError(AppException):
    """
    Eccezione sollevata quando l'operazione non è ammessa nello stato corrente.

    Esempi di utilizzo:
        - Modifica di una voce di un SAL già certificato
        - Registrazione di una liberatoria su un SAL in bozza
    """

    status_code: int = 409
    error_code: str = "INVALID_STATE"

    def __init__(
        self,
        detail: str = "Operazione non consentita nello stato corrente",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class InvalidTransitionError(AppException):
    """
    Eccezione sollevata per una transizione di stato fuori sequenza.

    Gli stati del SAL avanzano solo in avanti e senza salti:
    draft → submitted → certified → paid.
    """

    status_code: int = 409
    error_code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        detail: str = "Transizione di stato non consentita",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ReferencedEntityError(AppException):
    """
    Eccezione sollevata quando si elimina un'entità ancora referenziata.

    Una voce di computo usata da almeno una riga di SAL (in qualunque
    periodo e stato) non può essere eliminata.
    """

    status_code: int = 409
    error_code: str = "REFERENCED_ENTITY"

    def __init__(
        self,
        detail: str = "Risorsa ancora referenziata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)

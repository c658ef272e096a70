"""
Motore di calcolo dei totali del SAL
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Funzioni pure, senza accesso al database: dato l'insieme delle righe di
un SAL (con importo contrattuale e ritenuta della voce già uniti) calcola
i totali del periodo (prospetto G702) e l'avanzamento di ogni riga
(prospetto G703).

Le regole "override oppure valore base" sono risolte solo da
resolve_certified() e resolve_retainage_pct(): ogni calcolo passa da lì.
"""

import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    """Arrotonda un importo al centesimo (ROUND_HALF_UP)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _percent(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Percentuale a due decimali, 0 se il denominatore è zero."""
    if denominator == 0:
        return ZERO
    return (numerator / denominator * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


# -------------------------------------------------------------------
# Risoluzione override
# -------------------------------------------------------------------

def resolve_certified(
    work_completed_this_period: Decimal,
    certified_this_period: Optional[Decimal],
) -> Decimal:
    """
    Importo certificato del periodo.

    Args:
        work_completed_this_period: Lavori eseguiti nel periodo
        certified_this_period: Importo certificato dal revisore (opzionale)

    Returns:
        L'importo certificato se presente, altrimenti l'eseguito
    """
    if certified_this_period is not None:
        return certified_this_period
    return work_completed_this_period


def resolve_retainage_pct(
    retainage_pct: Decimal,
    retainage_pct_override: Optional[Decimal],
) -> Decimal:
    """
    Percentuale di ritenuta effettiva della riga.

    Args:
        retainage_pct: Ritenuta della voce di computo
        retainage_pct_override: Ritenuta del solo periodo (opzionale)

    Returns:
        La ritenuta del periodo se presente, altrimenti quella della voce
    """
    if retainage_pct_override is not None:
        return retainage_pct_override
    return retainage_pct


# -------------------------------------------------------------------
# Modelli di input/output
# -------------------------------------------------------------------

class PayAppLineItemView(BaseModel):
    """
    Vista immutabile di una riga di SAL unita alla sua voce di computo.

    È l'unico input del motore di calcolo.
    """

    model_config = ConfigDict(frozen=True)

    sov_line_item_id: Optional[uuid.UUID] = None
    item_number: str = ""
    scheduled_value: Decimal = ZERO
    retainage_pct: Decimal = ZERO
    work_completed_previous: Decimal = ZERO
    work_completed_this_period: Decimal = ZERO
    materials_stored: Decimal = ZERO
    certified_this_period: Optional[Decimal] = None
    retainage_pct_override: Optional[Decimal] = None

    @classmethod
    def from_line_item(cls, line_item) -> "PayAppLineItemView":
        """
        Costruisce la vista da una riga ORM con la voce di computo caricata.

        Args:
            line_item: Istanza PayAppLineItem con sov_line_item caricato
        """
        sov_item = line_item.sov_line_item
        return cls(
            sov_line_item_id=line_item.sov_line_item_id,
            item_number=sov_item.item_number,
            scheduled_value=sov_item.scheduled_value,
            retainage_pct=sov_item.retainage_pct,
            work_completed_previous=line_item.work_completed_previous,
            work_completed_this_period=line_item.work_completed_this_period,
            materials_stored=line_item.materials_stored,
            certified_this_period=line_item.certified_this_period,
            retainage_pct_override=line_item.retainage_pct_override,
        )

    @property
    def certified(self) -> Decimal:
        return resolve_certified(self.work_completed_this_period, self.certified_this_period)

    @property
    def effective_retainage_pct(self) -> Decimal:
        return resolve_retainage_pct(self.retainage_pct, self.retainage_pct_override)

    @property
    def retainage_amount(self) -> Decimal:
        """Ritenuta della riga, non arrotondata."""
        return self.certified * self.effective_retainage_pct / HUNDRED

    @property
    def total_completed_and_stored(self) -> Decimal:
        """Eseguito a oggi: precedente + periodo + materiali."""
        return self.work_completed_previous + self.work_completed_this_period + self.materials_stored


class LineProgress(BaseModel):
    """Avanzamento di una riga (colonne del prospetto G703)."""

    certified: Decimal = Field(..., serialization_alias="certified")
    retainage_pct: Decimal = Field(..., serialization_alias="retainagePct")
    retainage_amount: Decimal = Field(..., serialization_alias="retainageAmount")
    total_completed_and_stored: Decimal = Field(..., serialization_alias="totalCompletedAndStored")
    pct_complete: Decimal = Field(..., serialization_alias="pctComplete")
    balance_to_finish: Decimal = Field(..., serialization_alias="balanceToFinish")
    is_overbilled: bool = Field(False, serialization_alias="isOverbilled")


class PayAppTotals(BaseModel):
    """
    Totali del periodo (prospetto G702).

    Invarianti:
        total_earned = completed_previous + certified_this_period + materials_stored
        net_payment = certified_this_period - retainage_held
    """

    scheduled_value: Decimal = Field(ZERO, serialization_alias="scheduledValue")
    completed_previous: Decimal = Field(ZERO, serialization_alias="completedPrevious")
    completed_this_period: Decimal = Field(ZERO, serialization_alias="completedThisPeriod")
    materials_stored: Decimal = Field(ZERO, serialization_alias="materialsStored")
    certified_this_period: Decimal = Field(ZERO, serialization_alias="certifiedThisPeriod")
    retainage_held: Decimal = Field(ZERO, serialization_alias="retainageHeld")
    total_earned: Decimal = Field(ZERO, serialization_alias="totalEarned")
    net_payment: Decimal = Field(ZERO, serialization_alias="netPayment")
    pct_complete: Decimal = Field(ZERO, serialization_alias="pctComplete")
    earned_less_retainage: Decimal = Field(ZERO, serialization_alias="earnedLessRetainage")
    balance_to_finish: Decimal = Field(ZERO, serialization_alias="balanceToFinish")


class OverbilledItem(BaseModel):
    """Riga il cui eseguito a oggi supera l'importo contrattuale."""

    sov_line_item_id: Optional[uuid.UUID] = Field(None, serialization_alias="sovLineItemId")
    item_number: str = Field("", serialization_alias="itemNumber")
    scheduled_value: Decimal = Field(..., serialization_alias="scheduledValue")
    total_completed_and_stored: Decimal = Field(..., serialization_alias="totalCompletedAndStored")
    excess: Decimal = Field(..., serialization_alias="excess")


# -------------------------------------------------------------------
# Calcoli
# -------------------------------------------------------------------

def is_overbilled(view: PayAppLineItemView) -> bool:
    """True se precedente + periodo + materiali supera l'importo contrattuale."""
    return view.total_completed_and_stored > view.scheduled_value


def compute_line_progress(view: PayAppLineItemView) -> LineProgress:
    """
    Calcola l'avanzamento di una singola riga.

    Args:
        view: Riga del SAL

    Returns:
        LineProgress con importi arrotondati al centesimo
    """
    total = view.total_completed_and_stored
    return LineProgress(
        certified=view.certified,
        retainage_pct=view.effective_retainage_pct,
        retainage_amount=_money(view.retainage_amount),
        total_completed_and_stored=total,
        pct_complete=_percent(total, view.scheduled_value),
        balance_to_finish=view.scheduled_value - total,
        is_overbilled=is_overbilled(view),
    )


def compute_totals(line_items: Iterable[PayAppLineItemView]) -> PayAppTotals:
    """
    Aggrega le righe di un SAL nei totali del periodo.

    La ritenuta è sommata a precisione piena e arrotondata una sola volta;
    il netto è derivato dalla ritenuta arrotondata, così le invarianti
    valgono al centesimo. Con importo contrattuale nullo la percentuale
    di completamento è 0.

    Args:
        line_items: Righe del SAL (anche vuote)

    Returns:
        PayAppTotals
    """
    scheduled = ZERO
    previous = ZERO
    this_period = ZERO
    materials = ZERO
    certified = ZERO
    retainage = ZERO

    for item in line_items:
        scheduled += item.scheduled_value
        previous += item.work_completed_previous
        this_period += item.work_completed_this_period
        materials += item.materials_stored
        certified += item.certified
        retainage += item.retainage_amount

    retainage_held = _money(retainage)
    total_earned = previous + certified + materials

    return PayAppTotals(
        scheduled_value=scheduled,
        completed_previous=previous,
        completed_this_period=this_period,
        materials_stored=materials,
        certified_this_period=certified,
        retainage_held=retainage_held,
        total_earned=total_earned,
        net_payment=certified - retainage_held,
        pct_complete=_percent(total_earned, scheduled),
        earned_less_retainage=total_earned - retainage_held,
        balance_to_finish=scheduled - total_earned + retainage_held,
    )


def find_overbilled_items(line_items: Iterable[PayAppLineItemView]) -> list[OverbilledItem]:
    """
    Elenca le righe che superano l'importo contrattuale.

    Args:
        line_items: Righe del SAL

    Returns:
        Lista di OverbilledItem (vuota se nessuna riga è in eccesso)
    """
    return [
        OverbilledItem(
            sov_line_item_id=item.sov_line_item_id,
            item_number=item.item_number,
            scheduled_value=item.scheduled_value,
            total_completed_and_stored=item.total_completed_and_stored,
            excess=item.total_completed_and_stored - item.scheduled_value,
        )
        for item in line_items
        if is_overbilled(item)
    ]

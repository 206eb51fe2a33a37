from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from app.core.errors import InvalidAmount

_CENTS = Decimal("0.01")
_UNITS = Decimal("1")

class CurrencyConverter:
    """USD -> KES at a fixed exchange rate. Decimal math so 6.50 * 129.4 is exactly 841.10."""

    def __init__(self, rate: float):
        self.rate = Decimal(str(rate))

    def _local(self, usd_amount) -> Decimal:
        if isinstance(usd_amount, bool):
            raise InvalidAmount(f"Not a number: {usd_amount!r}")
        try:
            usd = Decimal(str(usd_amount))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmount(f"Not a number: {usd_amount!r}")
        if not usd.is_finite() or usd < 0:
            raise InvalidAmount(f"Invalid amount: {usd_amount!r}")
        return usd * self.rate

    def to_local(self, usd_amount) -> float:
        return float(self._local(usd_amount).quantize(_CENTS, rounding=ROUND_HALF_UP))

    def to_local_display(self, usd_amount) -> str:
        return str(self._local(usd_amount).quantize(_CENTS, rounding=ROUND_HALF_UP))

    def to_payment_amount(self, usd_amount) -> int:
        # STK push amounts are whole shillings
        return int(self._local(usd_amount).quantize(_UNITS, rounding=ROUND_HALF_UP))

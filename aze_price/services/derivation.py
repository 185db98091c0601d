"""AZE price derivation."""

import math

from ..api.schemas import DerivedPrices


def derive_prices(btc_brl: float, btc_usd: float, divisor: float) -> DerivedPrices:
    """Derive AZE prices as BTC price / divisor for each currency.

    Callers validate that the BTC prices are positive before deriving.
    """
    if not math.isfinite(divisor) or divisor <= 0:
        raise ValueError(f"divisor must be finite and greater than zero, got {divisor}")

    return DerivedPrices(
        aze_brl=btc_brl / divisor,
        aze_usd=btc_usd / divisor,
    )

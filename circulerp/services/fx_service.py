"""
EUR conversion rates for wire transfers.

Rates come from the Frankfurter API and are memoized for the lifetime of the
process. A failed lookup is logged and treated as 1:1 so that recording a
transfer never fails on an FX outage.
"""

from datetime import date
from typing import Optional

import httpx
import structlog

from circulerp.config import settings

logger = structlog.get_logger()

_rate_cache: dict[tuple[str, str], float] = {}


async def get_eur_rate(
    currency: str,
    on_date: date,
    client: Optional[httpx.AsyncClient] = None,
) -> float:
    """Return how many EUR one unit of ``currency`` was worth on ``on_date``."""
    currency = (currency or "USD").upper()
    if currency == "EUR":
        return 1.0

    key = (currency, on_date.isoformat())
    if key in _rate_cache:
        return _rate_cache[key]

    url = f"{settings.FX_API_URL}/{on_date.isoformat()}"
    params = {"from": currency, "to": "EUR"}
    try:
        if client is not None:
            response = await client.get(url, params=params)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0)) as c:
                response = await c.get(url, params=params)
        response.raise_for_status()
        rate = float(response.json()["rates"]["EUR"])
    except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
        logger.warning("fx_rate_fetch_failed", currency=currency, date=key[1], error=str(exc))
        return 1.0

    _rate_cache[key] = rate
    logger.info("fx_rate_fetched", currency=currency, date=key[1], rate=rate)
    return rate


def clear_cache() -> None:
    _rate_cache.clear()

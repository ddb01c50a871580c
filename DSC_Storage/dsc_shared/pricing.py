"""Deal cost and expiry calculation."""

from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Iterable, Optional
from uuid import UUID

from DSC_Storage.dsc_shared import config
from DSC_Storage.dsc_shared.types import StorageProvider


def size_in_gb(size_bytes: int) -> Decimal:
    return Decimal(size_bytes) / Decimal(config.BYTES_PER_GB)


def calculate_cost(size_bytes: int, price_per_gb: Decimal) -> Decimal:
    """Return ``size_bytes / 2**30 * price_per_gb`` at NUMERIC(38,18) scale."""
    if size_bytes < 0:
        raise ValueError(f"Negative file size: {size_bytes}")
    if price_per_gb < 0:
        raise ValueError(f"Negative price: {price_per_gb}")

    with localcontext() as ctx:
        ctx.prec = 38
        cost = size_in_gb(size_bytes) * Decimal(price_per_gb)
        return cost.quantize(config.COST_QUANTUM, rounding=ROUND_HALF_UP)


def resolve_price(
    providers: Iterable[StorageProvider],
    provider_id: Optional[UUID],
) -> Decimal:
    """Provider's price when it is known, else the default rate."""
    if provider_id is None:
        return config.DEFAULT_PRICE_PER_GB

    for provider in providers:
        if provider.id == provider_id:
            return Decimal(provider.price_per_gb)

    return config.DEFAULT_PRICE_PER_GB


def total_batch_cost(sizes: Iterable[int], price_per_gb: Decimal) -> Decimal:
    return calculate_cost(sum(sizes), price_per_gb)


def expiry_for(created_at: datetime, duration_days: int = config.DEAL_DURATION_DAYS) -> datetime:
    return created_at + timedelta(days=duration_days)

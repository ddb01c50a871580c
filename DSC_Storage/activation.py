"""
Deal activation: the pending → active transition.

After a deal row is inserted as pending, the settlement backend is asked to
confirm it. When the call resolves the deal is moved to active. A rejected
settlement call also ends in active unless activate_on_failure is turned off,
in which case the deal is marked failed; only the reported outcome differs.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.types import StorageDeal
from DSC_Storage.settlement import SettlementBackend

logger = logging.getLogger(__name__)


@dataclass
class ActivationOutcome:
    deal: StorageDeal
    settled: bool
    settlement_deal_id: Optional[str] = None
    error: Optional[str] = None


class DealActivationSequencer:
    def __init__(
        self,
        deal_store,
        settlement: SettlementBackend,
        activate_on_failure: bool = config.ACTIVATE_ON_SETTLEMENT_FAILURE,
        replication_factor: int = config.REPLICATION_FACTOR,
    ):
        self.deal_store = deal_store
        self.settlement = settlement
        self.activate_on_failure = activate_on_failure
        self.replication_factor = replication_factor

    async def activate(self, deal: StorageDeal) -> ActivationOutcome:
        settlement_id = None
        error = None

        try:
            settlement_id = await self.settlement.create_deal(
                deal.file_cid,
                deal.file_size,
                deal.deal_duration * 86400,
                str(deal.storage_provider_id or ""),
                self.replication_factor,
                deal.total_cost,
            )
        except errors.SettlementError as e:
            error = str(e)
            logger.warning("Settlement failed for deal %s: %s", deal.id, e)

        settled = error is None
        status = "active" if settled or self.activate_on_failure else "failed"

        updated = await self.deal_store.update_status(deal.id, status)
        if updated is None:
            raise errors.DealNotFoundError(deal.id)

        logger.info("Deal %s -> %s (settlement %s)", deal.id, status, settlement_id or "failed")
        return ActivationOutcome(
            deal=updated,
            settled=settled,
            settlement_deal_id=settlement_id,
            error=error,
        )

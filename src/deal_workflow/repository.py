"""
Persistence port for deals.

The engine only needs two operations: load a deal by id and save a new
snapshot guarded by the version it was loaded at. Any store (document DB,
relational row, key-value) can implement DealRepository.

Key design decisions:
- save_deal(expected_version=...) is the optimistic concurrency check; a
  mismatch raises ConcurrentModificationError so writers outside this
  process cannot silently overwrite each other.
- InMemoryDealRepository is the reference implementation used by tests and
  single-process deployments. It stores and hands out deep copies, so no
  caller shares an object with the store.
"""

from typing import Protocol, runtime_checkable

import structlog

from .errors import ConcurrentModificationError, DealNotFoundError
from .models.deal import Deal

logger = structlog.get_logger(__name__)


@runtime_checkable
class DealRepository(Protocol):
    """Storage interface consumed by DealWorkflowService."""

    async def load_deal(self, deal_id: str) -> Deal:
        """
        Load the current snapshot of a deal.

        Raises:
            DealNotFoundError: No deal stored under deal_id
            StorageError: The store could not be read
        """
        ...

    async def save_deal(self, deal: Deal, expected_version: int | None = None) -> None:
        """
        Persist a deal snapshot.

        Args:
            deal: Snapshot to store (its version is the new version)
            expected_version: Version the caller loaded; None skips the check

        Raises:
            ConcurrentModificationError: Stored version differs from expected_version
            StorageError: The store could not be written
        """
        ...


class InMemoryDealRepository:
    """Dict-backed DealRepository."""

    def __init__(self, deals: list[Deal] | None = None):
        self._deals: dict[str, Deal] = {
            deal.id: deal.model_copy(deep=True) for deal in deals or []
        }

    def __len__(self) -> int:
        return len(self._deals)

    async def load_deal(self, deal_id: str) -> Deal:
        deal = self._deals.get(deal_id)
        if deal is None:
            raise DealNotFoundError(f'Deal {deal_id} not found', context={'deal_id': deal_id})
        return deal.model_copy(deep=True)

    async def save_deal(self, deal: Deal, expected_version: int | None = None) -> None:
        stored = self._deals.get(deal.id)
        if expected_version is not None:
            stored_version = stored.version if stored else None
            if stored_version != expected_version:
                logger.warning(
                    'repository.version_conflict',
                    deal_id=deal.id,
                    expected_version=expected_version,
                    stored_version=stored_version,
                )
                raise ConcurrentModificationError(
                    f'Deal {deal.id} was modified concurrently',
                    context={
                        'deal_id': deal.id,
                        'expected_version': expected_version,
                        'stored_version': stored_version,
                    },
                )
        self._deals[deal.id] = deal.model_copy(deep=True)
        logger.debug('repository.deal_saved', deal_id=deal.id, version=deal.version)

    async def list_deals(self) -> list[Deal]:
        return [deal.model_copy(deep=True) for deal in self._deals.values()]

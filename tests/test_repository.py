"""
Tests for InMemoryDealRepository and DealLockRegistry.

Tests cover:
- Load/save round trip and DealNotFoundError for unknown ids
- Optimistic version check on save
- Per-deal locks: same deal serialized, different deals independent, cleanup

Run with: pytest tests/test_repository.py -v
"""

import asyncio

import pytest

from deal_workflow.errors import ConcurrentModificationError, DealNotFoundError
from deal_workflow.locks import DealLockRegistry
from deal_workflow.repository import DealRepository, InMemoryDealRepository


class TestInMemoryRepository:

    @pytest.mark.asyncio
    async def test_save_and_load(self, repository, make_deal):
        deal = make_deal()
        await repository.save_deal(deal)

        loaded = await repository.load_deal(deal.id)
        assert loaded == deal
        assert loaded is not deal
        assert len(repository) == 1
        assert await repository.list_deals() == [deal]

    @pytest.mark.asyncio
    async def test_unknown_deal(self, repository):
        with pytest.raises(DealNotFoundError) as exc_info:
            await repository.load_deal('missing')

        assert exc_info.value.context == {'deal_id': 'missing'}

    @pytest.mark.asyncio
    async def test_expected_version_matches(self, make_deal):
        deal = make_deal()
        repository = InMemoryDealRepository([deal])
        newer = deal.model_copy(update={'version': 2})

        await repository.save_deal(newer, expected_version=1)
        assert (await repository.load_deal(deal.id)).version == 2

    @pytest.mark.asyncio
    async def test_expected_version_mismatch(self, make_deal):
        deal = make_deal()
        repository = InMemoryDealRepository([deal.model_copy(update={'version': 3})])

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await repository.save_deal(deal.model_copy(update={'version': 2}), expected_version=1)

        assert exc_info.value.context['stored_version'] == 3
        assert (await repository.load_deal(deal.id)).version == 3

    @pytest.mark.asyncio
    async def test_expected_version_for_unsaved_deal(self, repository, make_deal):
        with pytest.raises(ConcurrentModificationError):
            await repository.save_deal(make_deal(), expected_version=1)

    @pytest.mark.asyncio
    async def test_loaded_snapshot_cannot_change_store(self, repository, make_deal):
        deal = make_deal(terms={'price': 100}, logistics={'insurance': {'provider': 'Acme'}})
        await repository.save_deal(deal)

        loaded = await repository.load_deal(deal.id)
        with pytest.raises(TypeError):
            loaded.terms['price'] = -5
        with pytest.raises(TypeError):
            loaded.logistics['insurance']['provider'] = 'Other'
        # bypass the read-only wrapper entirely
        dict.__setitem__(loaded.terms, 'price', -5)

        reloaded = await repository.load_deal(deal.id)
        assert reloaded.terms == {'price': 100}
        assert reloaded.version == 1
        assert len(reloaded.timeline) == len(deal.timeline)

    @pytest.mark.asyncio
    async def test_saved_snapshot_detached_from_caller(self, repository, make_deal):
        deal = make_deal(terms={'price': 100})
        await repository.save_deal(deal)
        dict.__setitem__(deal.terms, 'price', -5)

        assert (await repository.load_deal(deal.id)).terms['price'] == 100

    def test_protocol_conformance(self, repository):
        assert isinstance(repository, DealRepository)


class TestDealLockRegistry:

    @pytest.mark.asyncio
    async def test_same_deal_serialized(self):
        locks = DealLockRegistry()
        order = []

        async def worker(name):
            async with locks.hold('deal_1'):
                order.append(f'{name}:start')
                await asyncio.sleep(0)
                order.append(f'{name}:end')

        await asyncio.gather(worker('a'), worker('b'))

        assert order == ['a:start', 'a:end', 'b:start', 'b:end']

    @pytest.mark.asyncio
    async def test_different_deals_interleave(self):
        locks = DealLockRegistry()
        order = []

        async def worker(deal_id):
            async with locks.hold(deal_id):
                order.append(f'{deal_id}:start')
                await asyncio.sleep(0)
                order.append(f'{deal_id}:end')

        await asyncio.gather(worker('d1'), worker('d2'))

        assert order == ['d1:start', 'd2:start', 'd1:end', 'd2:end']

    @pytest.mark.asyncio
    async def test_locks_released_and_dropped(self):
        locks = DealLockRegistry()

        async with locks.hold('deal_1'):
            assert locks.is_locked('deal_1')
            assert len(locks) == 1

        assert not locks.is_locked('deal_1')
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = DealLockRegistry()

        with pytest.raises(RuntimeError):
            async with locks.hold('deal_1'):
                raise RuntimeError('boom')

        assert len(locks) == 0

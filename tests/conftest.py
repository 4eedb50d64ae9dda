"""
Pytest configuration and shared fixtures for the deal workflow tests.

Key fixtures:
- clock: Controllable UTC clock (starts 2024-03-01 09:00, advance() moves it)
- make_deal: Factory for Deal snapshots at any stage/status
- repository: Empty InMemoryDealRepository
- dispatcher: NotificationDispatcher with no wait between retries

No external services are required; every collaborator is in-memory or mocked.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from tenacity import wait_none

from deal_workflow.models import (
    Deal,
    DealDocument,
    DealStage,
    DealStatus,
    DealType,
    DocumentStatus,
    Participant,
    ParticipantRole,
)
from deal_workflow.notifications import NotificationDispatcher
from deal_workflow.repository import InMemoryDealRepository


START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock for deterministic timeline dates."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_deal():
    """
    Build a Deal snapshot directly (bypassing the service).

    Usage:
        deal = make_deal(DealType.LEASE, stage=DealStage.DISCUSSION,
                         roles=[ParticipantRole.SELLER],
                         documents={'Draft lease agreement': DocumentStatus.APPROVED},
                         terms={'duration': 12})
    """

    def _make(
        deal_type: DealType = DealType.FULL_SALE,
        stage: DealStage = DealStage.INITIATION,
        status: DealStatus | None = None,
        roles: list[ParticipantRole] | None = None,
        documents: dict[str, DocumentStatus] | None = None,
        **fields,
    ) -> Deal:
        if status is None:
            status = DealStatus.COMPLETED if stage == DealStage.COMPLETE else DealStatus.ACTIVE
        participants = tuple(
            Participant(user_id=f'user_{role.value.lower()}', role=role)
            for role in roles or []
        )
        docs = tuple(
            DealDocument(document_type=doc_type, name=doc_type, status=doc_status)
            for doc_type, doc_status in (documents or {}).items()
        )
        return Deal(
            type=deal_type,
            stage=stage,
            status=status,
            participants=participants,
            documents=docs,
            created_at=START,
            updated_at=START,
            **fields,
        )

    return _make


@pytest.fixture
def repository() -> InMemoryDealRepository:
    return InMemoryDealRepository()


@pytest.fixture
def dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(max_attempts=3, wait=wait_none())

"""Pytest configuration and fixtures."""

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["ADMIN_TOKEN"] = ""
for _name in ("CONFIRMATION_WEBHOOK_SECRET", "NOTIFICATION_WEBHOOK_URL", "LEDGER_WEBHOOK_URL"):
    os.environ.pop(_name, None)

from depositflow.deposits.events import DepositEvent
from depositflow.deposits.fees import fee_breakdown
from depositflow.deposits.lifecycle import LifecycleManager
from depositflow.ledger.models import Base, DepositPurpose
from depositflow.ledger.repository import DepositRepository
from depositflow.notifications.dispatcher import NotificationDispatcher, set_dispatcher
from depositflow.utils.locks import clear_locks


class RecordingDispatcher(NotificationDispatcher):
    """Keeps dispatched events for assertions."""

    def __init__(self, fail: bool = False):
        self.events: list[DepositEvent] = []
        self.fail = fail

    async def send(self, event: DepositEvent) -> bool:
        if self.fail:
            raise RuntimeError("email service down")
        self.events.append(event)
        return True

    @property
    def types(self) -> list[str]:
        return [e.type.value for e in self.events]


@dataclass
class Seeded:
    """Plain ids of seeded rows, safe to use across sessions and rollbacks."""

    asset_id: int
    account_id: int
    personal_wallet_id: int
    pool_wallet_ids: list[int]
    user_id: str = "user-1"


@pytest.fixture(autouse=True)
def reset_globals():
    """Locks and the dispatcher are process-wide singletons."""
    clear_locks()
    set_dispatcher(None)
    yield
    clear_locks()
    set_dispatcher(None)


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def repo(db_session: AsyncSession) -> DepositRepository:
    """Create deposit repository for testing."""
    return DepositRepository(db_session)


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """File-backed engine for tests that need several independent sessions."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'deposits.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(file_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=file_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


async def seed_deposit_world(
    repo: DepositRepository,
    fee_percent: Decimal = Decimal("2"),
    required_confirmations: int = 3,
    balance: Decimal = Decimal("400"),
    min_deposit: Decimal = Decimal("500"),
    asset_min_deposit: Decimal = Decimal("1"),
    user_id: str = "user-1",
    account_number: Optional[str] = None,
) -> Seeded:
    """USDT/TRC20 asset, one account, one personal wallet and two pool wallets."""
    asset = await repo.upsert_asset(
        currency="USDT",
        network="TRC20",
        min_deposit=asset_min_deposit,
        fee_percent=fee_percent,
        required_confirmations=required_confirmations,
        amount_precision=2,
        display_name="TRON (TRC20)",
    )
    account = await repo.create_account(
        user_id=user_id,
        account_number=account_number or f"ACC-{user_id}",
        balance=balance,
        min_deposit=min_deposit,
        status="pending_funding",
    )
    personal = await repo.create_wallet(asset.id, "TPersonalAddr0001", user_id=user_id)
    pool_a = await repo.create_wallet(asset.id, "TPoolAddr0001")
    pool_b = await repo.create_wallet(asset.id, "TPoolAddr0002")
    await repo.session.commit()

    return Seeded(
        asset_id=asset.id,
        account_id=account.id,
        personal_wallet_id=personal.id,
        pool_wallet_ids=[pool_a.id, pool_b.id],
        user_id=user_id,
    )


@pytest_asyncio.fixture
async def seeded(repo: DepositRepository) -> Seeded:
    """Standard data set in the in-memory database."""
    return await seed_deposit_world(repo)


@pytest_asyncio.fixture
async def seeded_file(session_factory) -> Seeded:
    """Standard data set in the file-backed database."""
    async with session_factory() as session:
        return await seed_deposit_world(DepositRepository(session))


async def create_deposit(
    repo: DepositRepository,
    seeded: Seeded,
    purpose: DepositPurpose = DepositPurpose.GENERAL,
    gross: Decimal = Decimal("102.06"),
    tx_reference: Optional[str] = "0xfeed",
    proof_pointer: Optional[str] = None,
    auto_complete: bool = False,
) -> int:
    """Create and commit a pending deposit through the lifecycle manager."""
    asset = await repo.get_asset_by_id(seeded.asset_id)
    account = await repo.get_account(seeded.account_id)
    wallet = await repo.get_wallet(seeded.personal_wallet_id)
    fee, net = fee_breakdown(gross, asset.fee_percent, asset.amount_precision)

    manager = LifecycleManager(repo, auto_complete=auto_complete)
    deposit = await manager.create(
        user_id=seeded.user_id,
        account=account,
        asset=asset,
        wallet=wallet,
        gross_amount=gross,
        fee_amount=fee,
        net_amount=net,
        purpose=purpose,
        tx_reference=tx_reference,
        proof_pointer=proof_pointer,
    )
    await repo.session.commit()
    return deposit.id

"""
Shared fixtures: a fresh SQLite database per test and two isolated accounts
"""

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.db import Base, build_engine
from app.schemas.account import AccountCreate
from app.schemas.guest import GuestCreate
from app.services.account_service import AccountService
from app.services.doorprize_service import DoorprizeService
from app.services.guest_service import GuestLifecycleService
from app.services.notifications import ChangeNotifier
from app.services.repositories import get_repositories
from app.services.walkin_service import WalkInService
from app.utils.deadline import Deadline
from app.utils.locks import KeyedLock


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Create test database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def repos(db_session):
    return get_repositories(db_session, Deadline.unbounded())


@pytest.fixture
def events():
    """Changes emitted during the test"""
    return []


@pytest.fixture
def notifier(events):
    notifier = ChangeNotifier()
    notifier.subscribe(events.append)
    return notifier


@pytest.fixture
def accounts(repos):
    return AccountService(repos)


@pytest.fixture
def lifecycle(repos, notifier):
    return GuestLifecycleService(repos, notifier)


@pytest.fixture
def walkins(lifecycle):
    return WalkInService(lifecycle, locks=KeyedLock())


@pytest.fixture
def doorprize(repos, notifier):
    return DoorprizeService(repos, notifier)


@pytest.fixture
def account_a(accounts):
    return accounts.create_account(AccountCreate(title="Wedding A"))


@pytest.fixture
def account_b(accounts):
    return accounts.create_account(AccountCreate(title="Wedding B", guest_categories=["Family", "Friends"]))


@pytest.fixture
def make_guest(lifecycle):
    """Register an invited guest with sensible defaults"""
    def _make(account, name="Budi", phone="", category=None, **extra):
        data = GuestCreate(
            name=name,
            phone=phone,
            category=category or account.guest_categories[0],
            **extra,
        )
        return lifecycle.register_guest(account.id, data)
    return _make

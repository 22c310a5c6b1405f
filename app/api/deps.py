"""
Shared FastAPI dependencies
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.services.account_service import AccountService
from app.services.doorprize_service import DoorprizeService
from app.services.guest_service import GuestLifecycleService
from app.services.repositories import Repositories, get_repositories
from app.services.walkin_service import WalkInService
from app.utils.deadline import Deadline
from app.utils.security import AccountContext, resolve_account_context

bearer = HTTPBearer(auto_error=False)


def get_deadline() -> Deadline:
    return Deadline()


def get_repos(
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(get_deadline),
) -> Repositories:
    return get_repositories(db, deadline)


def get_account_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    repos: Repositories = Depends(get_repos),
) -> AccountContext:
    """Resolve the caller's account from the bearer token, before any guest query runs"""
    token = credentials.credentials if credentials else None
    return resolve_account_context(token, repos.accounts)


def get_account_service(repos: Repositories = Depends(get_repos)) -> AccountService:
    return AccountService(repos)


def get_lifecycle(repos: Repositories = Depends(get_repos)) -> GuestLifecycleService:
    return GuestLifecycleService(repos)


def get_walkin_service(lifecycle: GuestLifecycleService = Depends(get_lifecycle)) -> WalkInService:
    return WalkInService(lifecycle)


def get_doorprize_service(repos: Repositories = Depends(get_repos)) -> DoorprizeService:
    return DoorprizeService(repos)

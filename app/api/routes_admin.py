"""
Admin API routes - requires the static admin token
"""

import logging

from fastapi import APIRouter, Depends

from app.api.deps import get_account_service
from app.schemas.account import AccountCreate, AccountProvisioned
from app.services.account_service import AccountService
from app.utils.codes import validate_id
from app.utils.responses import success_response
from app.utils.security import issue_account_token, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/accounts")
def create_account(
    account_data: AccountCreate,
    service: AccountService = Depends(get_account_service),
    token: str = Depends(verify_admin_token)
):
    """Provision an account and hand out its first access token"""
    account = service.create_account(account_data)
    provisioned = AccountProvisioned(account=account, access_token=issue_account_token(account.id))

    return success_response(
        message="Account created successfully",
        data=provisioned.model_dump(),
        status_code=201
    )


@router.get("/accounts/{account_id}")
def get_account(
    account_id: str,
    service: AccountService = Depends(get_account_service),
    token: str = Depends(verify_admin_token)
):
    """Get account details"""
    validate_id(account_id, "Account")
    return success_response(
        message="Account retrieved",
        data=service.get(account_id).model_dump()
    )


@router.post("/accounts/{account_id}/token")
def issue_token(
    account_id: str,
    service: AccountService = Depends(get_account_service),
    token: str = Depends(verify_admin_token)
):
    """Issue a fresh access token for an existing account"""
    validate_id(account_id, "Account")
    account = service.get(account_id)
    provisioned = AccountProvisioned(account=account, access_token=issue_account_token(account.id))
    logger.info(f"Issued a new token for account {account_id}")

    return success_response(
        message="Token issued",
        data=provisioned.model_dump()
    )


@router.delete("/accounts/{account_id}")
def delete_account(
    account_id: str,
    service: AccountService = Depends(get_account_service),
    token: str = Depends(verify_admin_token)
):
    """Delete an account together with all of its guests, prizes and uploads"""
    validate_id(account_id, "Account")
    result = service.delete_account(account_id)

    return success_response(
        message="Account deleted successfully",
        data={
            "deleted_guests": result.guests,
            "deleted_prizes": result.prizes,
            "deleted_files": result.files,
        }
    )

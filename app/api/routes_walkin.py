"""
Front-desk walk-in routes
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_account_context, get_walkin_service
from app.schemas.walkin import WalkInCandidate, WalkInSubmission
from app.services.walkin_service import WalkInService
from app.utils.responses import success_response
from app.utils.security import AccountContext

router = APIRouter()


@router.post("/walk-ins")
def submit_walk_in(
    submission: WalkInSubmission,
    ctx: AccountContext = Depends(get_account_context),
    service: WalkInService = Depends(get_walkin_service)
):
    """Match a walk-in against the list, or stage it for confirmation"""
    outcome = service.find_or_stage(ctx.account_id, submission)
    return success_response(message=outcome.message, data=outcome.model_dump())


@router.post("/walk-ins/confirm")
def confirm_walk_in(
    candidate: WalkInCandidate,
    ctx: AccountContext = Depends(get_account_context),
    service: WalkInService = Depends(get_walkin_service)
):
    """Register a staged walk-in guest"""
    outcome = service.confirm_create(ctx.account_id, candidate)
    status_code = 201 if outcome.status == "created" else 200
    return success_response(message=outcome.message, data=outcome.model_dump(), status_code=status_code)

"""
Doorprize routes
"""

from typing import Optional

from fastapi import APIRouter, Depends

from app.api.deps import get_account_context, get_doorprize_service
from app.schemas.prize import DrawRequest, PrizeCreate, RecordWinnerRequest
from app.services.doorprize_service import DoorprizeService
from app.utils.responses import success_response
from app.utils.security import AccountContext

router = APIRouter()


@router.get("/checked-in")
def list_checked_in(
    search: Optional[str] = None,
    ctx: AccountContext = Depends(get_account_context),
    service: DoorprizeService = Depends(get_doorprize_service)
):
    """Guests eligible for the draw"""
    guests = service.list_checked_in(ctx.account_id, search)
    return success_response(
        message=f"{len(guests)} checked-in guest(s)",
        data=[g.model_dump() for g in guests]
    )


@router.post("/draw")
def draw(
    draw_data: DrawRequest,
    ctx: AccountContext = Depends(get_account_context),
    service: DoorprizeService = Depends(get_doorprize_service)
):
    """Spin once; pass earlier winners of this session in exclude_ids"""
    winner = service.draw_winner(ctx.account_id, draw_data.exclude_ids, draw_data.prize_id)
    return success_response(message=f"Winner: {winner.name}", data=winner.model_dump())


@router.get("/prizes")
def list_prizes(
    status: Optional[str] = None,
    ctx: AccountContext = Depends(get_account_context),
    service: DoorprizeService = Depends(get_doorprize_service)
):
    prizes = service.list_prizes(ctx.account_id, status)
    return success_response(message=f"{len(prizes)} prize(s)", data=[p.model_dump() for p in prizes])


@router.post("/prizes")
def create_prize(
    prize_data: PrizeCreate,
    ctx: AccountContext = Depends(get_account_context),
    service: DoorprizeService = Depends(get_doorprize_service)
):
    prize = service.create_prize(ctx.account_id, prize_data.name, prize_data.description)
    return success_response(message="Prize created successfully", data=prize.model_dump(), status_code=201)


@router.get("/stats")
def prize_stats(
    ctx: AccountContext = Depends(get_account_context),
    service: DoorprizeService = Depends(get_doorprize_service)
):
    return success_response(message="Prize statistics retrieved", data=service.prize_stats(ctx.account_id).model_dump())


@router.put("/prizes/{prize_id}/winner")
def record_winner(
    prize_id: str,
    winner_data: RecordWinnerRequest,
    ctx: AccountContext = Depends(get_account_context),
    service: DoorprizeService = Depends(get_doorprize_service)
):
    """Record the drawn guest as the prize winner; a prize can only be won once"""
    prize = service.record_prize_winner(ctx.account_id, prize_id, winner_data.guest_id)
    return success_response(message="Winner recorded", data=prize.model_dump())

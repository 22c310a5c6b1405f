"""
Account-scoped API routes: the account itself and its guest list.

The account id always comes from the bearer token, never from the path,
query or body.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from app.api.deps import get_account_context, get_account_service, get_lifecycle
from app.schemas.account import AccountUpdate
from app.schemas.guest import (
    CheckInRequest,
    GiftRequest,
    GuestCreate,
    GuestFilter,
    GuestImportRequest,
    GuestUpdate,
    SouvenirRequest,
)
from app.services.account_service import AccountService
from app.services.excel_service import ExcelService
from app.services.guest_service import GuestLifecycleService
from app.utils.responses import error_response, success_response
from app.utils.security import AccountContext

router = APIRouter()


def _guest_data(guest):
    return guest.model_dump()


# -------- account --------

@router.get("/account")
def get_account(
    ctx: AccountContext = Depends(get_account_context),
    service: AccountService = Depends(get_account_service)
):
    """Get the caller's account"""
    return success_response(message="Account retrieved", data=service.get(ctx.account_id).model_dump())


@router.put("/account")
def update_account(
    update: AccountUpdate,
    ctx: AccountContext = Depends(get_account_context),
    service: AccountService = Depends(get_account_service)
):
    """Edit event details and guest categories"""
    account = service.update(ctx.account_id, update)
    return success_response(message="Account updated successfully", data=account.model_dump())


# -------- guest list --------

@router.get("/guests")
def list_guests(
    search: Optional[str] = None,
    category: Optional[str] = None,
    is_invited: Optional[bool] = None,
    checked_in: Optional[bool] = None,
    table_no: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """List guests with optional filters"""
    flt = GuestFilter(
        search=search,
        category=category,
        is_invited=is_invited,
        checked_in=checked_in,
        table_no=table_no,
        limit=limit,
    )
    guests = service.list_guests(ctx.account_id, flt)
    return success_response(
        message=f"{len(guests)} guest(s) found",
        data=[_guest_data(g) for g in guests]
    )


@router.post("/guests")
def create_guest(
    guest_data: GuestCreate,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Register an invited guest"""
    guest = service.register_guest(ctx.account_id, guest_data)
    return success_response(message="Guest created successfully", data=_guest_data(guest), status_code=201)


@router.get("/guests/stats")
def guest_stats(
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Dashboard totals"""
    return success_response(message="Guest statistics retrieved", data=service.stats(ctx.account_id).model_dump())


@router.get("/guests/check-name")
def check_name(
    name: str = Query(..., min_length=1),
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Whether a guest with this name (case-insensitive) is already on the list"""
    exists = service.name_exists(ctx.account_id, name)
    return success_response(
        message="Name already exists" if exists else "Name is available",
        data={"name": name, "exists": exists}
    )


@router.get("/guests/recent-checkins")
def recent_check_ins(
    timeframe: int = Query(5, ge=0),
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Latest arrivals for the welcome screen, newest first"""
    guests = service.list_recent_check_ins(ctx.account_id, timeframe)
    return success_response(
        message=f"{len(guests)} recent check-in(s)",
        data=[_guest_data(g) for g in guests]
    )


@router.delete("/guests/bulk/all")
def delete_all_guests(
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Remove the whole guest list of the caller's account"""
    deleted = service.delete_all_guests(ctx.account_id)
    return success_response(message=f"Deleted {deleted} guest(s)", data={"deleted_guests": deleted})


@router.post("/guests/import")
def import_guests(
    request: GuestImportRequest,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Bulk import invited guests; bad rows are reported, not fatal"""
    result = service.import_invited_guests(ctx.account_id, request.guests)
    return success_response(
        message=f"Imported {result.imported} of {result.total} guests",
        data=result.model_dump()
    )


@router.post("/guests/import/excel")
def import_guests_excel(
    file: UploadFile = File(...),
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Upload and import an Excel guest list"""
    if not (file.filename or "").lower().endswith(('.xlsx', '.xls')):
        return error_response(
            message="Invalid file format. Please upload an Excel file (.xlsx or .xls)",
            error_code="validation_error",
            status_code=422
        )

    file_content = file.file.read()
    result = ExcelService.process_excel_upload(
        file_content=file_content,
        filename=file.filename,
        account_id=ctx.account_id,
        lifecycle=service,
    )
    return success_response(
        message=f"Imported {result.imported} of {result.total} guests",
        data=result.model_dump()
    )


# -------- single guest --------

@router.get("/guests/{guest_id}")
def get_guest(
    guest_id: str,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    return success_response(message="Guest retrieved", data=_guest_data(service.get_guest(ctx.account_id, guest_id)))


@router.patch("/guests/{guest_id}")
def update_guest(
    guest_id: str,
    update: GuestUpdate,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Edit guest details"""
    guest = service.update_details(ctx.account_id, guest_id, update)
    return success_response(message="Guest updated successfully", data=_guest_data(guest))


@router.delete("/guests/{guest_id}")
def delete_guest(
    guest_id: str,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    service.delete_guest(ctx.account_id, guest_id)
    return success_response(message="Guest deleted successfully", data={"id": guest_id})


@router.post("/guests/{guest_id}/checkin")
def check_in_guest(
    guest_id: str,
    checkin_data: CheckInRequest,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Check in a guest; an existing check-in is only overwritten with confirm=true"""
    guest = service.check_in(ctx.account_id, guest_id, checkin_data.guest_count, confirm=checkin_data.confirm)
    return success_response(message="Successfully checked in!", data=_guest_data(guest))


@router.post("/guests/{guest_id}/clear-checkin")
def clear_check_in(
    guest_id: str,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    guest = service.clear_check_in(ctx.account_id, guest_id)
    return success_response(message="Check-in cleared", data=_guest_data(guest))


@router.post("/guests/{guest_id}/gifts")
def assign_gift(
    guest_id: str,
    gift_data: GiftRequest,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    """Record kado and angpao for a guest"""
    guest = service.assign_gift(
        ctx.account_id, guest_id, gift_data.kado_count, gift_data.angpao_count, gift_data.note
    )
    return success_response(message="Gift recorded", data=_guest_data(guest))


@router.delete("/guests/{guest_id}/gifts")
def clear_gift(
    guest_id: str,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    guest = service.clear_gift(ctx.account_id, guest_id)
    return success_response(message="Gift cleared", data=_guest_data(guest))


@router.post("/guests/{guest_id}/souvenirs")
def assign_souvenir(
    guest_id: str,
    souvenir_data: SouvenirRequest,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    guest = service.assign_souvenir(ctx.account_id, guest_id, souvenir_data.count)
    return success_response(message="Souvenir recorded", data=_guest_data(guest))


@router.delete("/guests/{guest_id}/souvenirs")
def clear_souvenir(
    guest_id: str,
    ctx: AccountContext = Depends(get_account_context),
    service: GuestLifecycleService = Depends(get_lifecycle)
):
    guest = service.clear_souvenir(ctx.account_id, guest_id)
    return success_response(message="Souvenir cleared", data=_guest_data(guest))

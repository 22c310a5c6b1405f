"""
Public API routes - no authentication required
"""

from fastapi import APIRouter
from fastapi.responses import Response

from app.services.excel_service import ExcelService, XLSX_MEDIA_TYPE

router = APIRouter()


@router.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "ok"}


@router.get("/template/guest_import_template.xlsx")
def download_template():
    """Download the Excel template for invited guest import"""
    template_bytes = ExcelService.create_template()

    return Response(
        content=template_bytes,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=guest_import_template.xlsx"}
    )

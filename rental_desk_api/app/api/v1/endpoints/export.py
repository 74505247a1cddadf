"""
Data export endpoints for API v1.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from rental_desk_api.app.api.deps import get_export_service
from rental_desk_api.app.core.security import require_staff_session
from rental_desk_api.app.services.export_service import XLSX_MEDIA_TYPE, ExportService


router = APIRouter()


@router.get("/onsen")
async def export_onsen(
    startDate: Optional[str] = Query(None, description="YYYY-MM-DD"),
    endDate: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    _: dict = Depends(require_staff_session),
    service: ExportService = Depends(get_export_service),
) -> StreamingResponse:
    """Download Onsen visits as an Excel workbook.

    Without dates every Onsen record is exported; a single date selects
    that day only.
    """
    filename, content, count = await service.export_onsen(startDate, endDate)
    return StreamingResponse(
        iter([content]),
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Record-Count": str(count),
        },
    )

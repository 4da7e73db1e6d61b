"""
DocBridge Backend — Drive & Sheets Proxy Routes
=================================================

Each route resolves the caller's stored Google credentials through
GoogleWorkspaceService and returns the Google response body unchanged.
Users without credentials get 401 and must go through /auth/url first.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_google_service
from app.schemas.files import ErrorResponse
from app.schemas.google import DriveFile, SheetsReadRequest, SheetsWriteRequest
from app.services.google_service import DEFAULT_USER, GoogleWorkspaceService

router = APIRouter(tags=["Google"])

_ERRORS = {
    401: {"description": "User not authenticated", "model": ErrorResponse},
    404: {"description": "Spreadsheet or range not found", "model": ErrorResponse},
    502: {"description": "Google rejected the request", "model": ErrorResponse},
    503: {"description": "Google unavailable", "model": ErrorResponse},
}


@router.get(
    "/drive/files",
    response_model=List[DriveFile],
    responses=_ERRORS,
    summary="List spreadsheets in the user's Drive",
)
async def list_drive_files(
    user: str = Query(default=DEFAULT_USER, min_length=1),
    google: GoogleWorkspaceService = Depends(get_google_service),
) -> List[Dict[str, Any]]:
    return await google.list_spreadsheets(user)


@router.post(
    "/sheets/read",
    response_model=Dict[str, Any],
    responses=_ERRORS,
    summary="Read a range of cells",
)
async def read_sheet(
    body: SheetsReadRequest,
    google: GoogleWorkspaceService = Depends(get_google_service),
) -> Dict[str, Any]:
    return await google.read_values(body.user, body.file_id, body.range)


@router.post(
    "/sheets/write",
    response_model=Dict[str, Any],
    responses=_ERRORS,
    summary="Overwrite a range of cells",
)
async def write_sheet(
    body: SheetsWriteRequest,
    google: GoogleWorkspaceService = Depends(get_google_service),
) -> Dict[str, Any]:
    return await google.write_values(
        body.user,
        body.file_id,
        body.range,
        body.values,
        value_input_option=body.value_input_option,
    )

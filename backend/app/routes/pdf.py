"""
DocBridge Backend — PDF Routes
================================

What:  Create PDFs from text, extract text from uploads, and stamp text onto
       uploaded PDFs.
How:   The PDF work runs in the threadpool (it is CPU-bound); results are
       either stored in the object store (201 + download link, the default)
       or returned directly as application/pdf when `store` is false.

Request Flow (stored output):
    body/upload ──▶ pdf_service ──▶ ObjectStore.put ──▶ {"url": "/files/<id>/<name>", ...}
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.dependencies import get_object_store, get_settings
from app.schemas.files import ErrorResponse, StoredFileResponse
from app.schemas.pdf import CreatePdfRequest, ExtractTextResponse
from app.services import pdf_service
from app.services.object_store import ObjectStore, sanitize_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pdf", tags=["PDF"])

PDF_MEDIA_TYPE = "application/pdf"

_RESPONSES = {
    200: {"description": "PDF bytes (store=false)", "content": {PDF_MEDIA_TYPE: {}}},
    201: {"description": "Stored; download link returned", "model": StoredFileResponse},
    400: {"description": "Invalid input", "model": ErrorResponse},
    500: {"description": "Storage failure", "model": ErrorResponse},
}


async def _deliver(data: bytes, filename: str, store_output: bool, store: ObjectStore) -> Response:
    if store_output:
        stored = await store.put(data, filename)
        body = StoredFileResponse.from_stored(stored)
        return JSONResponse(status_code=201, content=body.model_dump(mode="json"))

    name = sanitize_filename(filename, store.config.allowed_suffixes, store.config.default_suffix)
    return Response(
        content=data,
        media_type=PDF_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )


async def _read_pdf_upload(file: UploadFile, settings: Settings) -> bytes:
    try:
        content = await file.read()
    finally:
        await file.close()
    logger.info("Received PDF upload: filename=%s, size=%d bytes", file.filename or "unknown", len(content))
    pdf_service.validate_pdf_upload(content, settings.max_upload_size)
    return content


@router.post(
    "/create",
    status_code=201,
    response_model=None,
    responses=_RESPONSES,
    summary="Create a PDF from text",
)
async def create_pdf(
    body: CreatePdfRequest,
    store: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> Response:
    data = await run_in_threadpool(
        pdf_service.create_pdf,
        body.text,
        body.title,
        body.font_size,
        settings.pdf_page_size,
    )
    return await _deliver(data, body.filename, body.store, store)


@router.post(
    "/extract",
    response_model=ExtractTextResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Extract text from a PDF",
)
async def extract_pdf_text(
    file: UploadFile = File(..., description="PDF document"),
    settings: Settings = Depends(get_settings),
) -> ExtractTextResponse:
    content = await _read_pdf_upload(file, settings)
    result = await run_in_threadpool(pdf_service.extract_text, content)
    return ExtractTextResponse(**result)


@router.post(
    "/add-text",
    status_code=201,
    response_model=None,
    responses=_RESPONSES,
    summary="Add text to a page of an existing PDF",
)
async def add_text_to_pdf(
    file: UploadFile = File(..., description="PDF document to modify"),
    text: str = Form(..., min_length=1, max_length=10_000),
    page: int = Form(1, ge=1, description="1-based page number"),
    x: float = Form(72, ge=0, description="Points from the left edge"),
    y: float = Form(72, ge=0, description="Points from the bottom edge"),
    font_size: float = Form(12, ge=4, le=144),
    filename: Optional[str] = Form(None, description="Suggested download name"),
    store_output: bool = Form(True, alias="store"),
    store: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> Response:
    content = await _read_pdf_upload(file, settings)
    data = await run_in_threadpool(pdf_service.add_text, content, text, page, x, y, font_size)

    if not filename:
        stem = Path((file.filename or "document").replace("\\", "/")).stem or "document"
        filename = f"{stem}-edited.pdf"
    return await _deliver(data, filename, store_output, store)

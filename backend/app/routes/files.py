"""
DocBridge Backend — File Download Routes
==========================================

What:  Serves objects from the ephemeral store by id.
Why:   PDF endpoints return links instead of bytes; this is where the links
       point.

Link format: /files/<id>/<display name>
    The name segment is cosmetic (it makes the URL end in "report.pdf");
    only the id selects the object, and Content-Disposition always carries
    the name stored with it.
"""

import mimetypes

from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from app.dependencies import get_object_store
from app.schemas.files import ErrorResponse
from app.services.object_store import ObjectReader, ObjectStore

router = APIRouter(prefix="/files", tags=["Files"])


class ObjectStreamResponse(StreamingResponse):
    """
    StreamingResponse that always closes its ObjectReader.

    The reader holds a slot that defers deletion of an expired object, so it
    is released even when the client disconnects before the body starts.
    """

    def __init__(self, reader: ObjectReader, **kwargs) -> None:
        super().__init__(reader, **kwargs)
        self.reader = reader

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.reader.aclose()


async def _stream(object_id: str, store: ObjectStore) -> ObjectStreamResponse:
    reader = await store.get(object_id)
    name = reader.display_name
    media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    return ObjectStreamResponse(
        reader,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{name}"',
            "Content-Length": str(reader.object.size),
            "Cache-Control": "no-store",
        },
    )


@router.get(
    "/{object_id}",
    responses={404: {"description": "Unknown or expired file", "model": ErrorResponse}},
    summary="Download a generated file",
)
async def download_file(
    object_id: str,
    store: ObjectStore = Depends(get_object_store),
) -> ObjectStreamResponse:
    return await _stream(object_id, store)


@router.get(
    "/{object_id}/{filename}",
    responses={404: {"description": "Unknown or expired file", "model": ErrorResponse}},
    summary="Download a generated file (named link)",
)
async def download_named_file(
    object_id: str,
    filename: str,
    store: ObjectStore = Depends(get_object_store),
) -> ObjectStreamResponse:
    return await _stream(object_id, store)


@router.delete("/{object_id}", status_code=204, summary="Delete a generated file early")
async def delete_file(
    object_id: str,
    store: ObjectStore = Depends(get_object_store),
) -> Response:
    # Same response whether or not the id existed
    await store.evict(object_id)
    return Response(status_code=204)

"""
DocBridge Backend — PDF Request/Response Schemas
==================================================

What:  Request body of POST /pdf/create and response of POST /pdf/extract.
       POST /pdf/add-text takes multipart form fields, declared on the route.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class CreatePdfRequest(BaseModel):
    text: str = Field(default="", max_length=500_000, description="Body text; newlines start paragraphs")
    title: Optional[str] = Field(default=None, max_length=500)
    filename: str = Field(default="document.pdf", description="Suggested download name")
    font_size: float = Field(default=11, ge=6, le=72)
    store: bool = Field(
        default=True,
        description="Store the file and return a download link (true) or return the bytes (false)",
    )


class ExtractTextResponse(BaseModel):
    page_count: int
    pages: List[str] = Field(description="Text of each page, in order")
    text: str = Field(description="Non-empty pages joined by blank lines")

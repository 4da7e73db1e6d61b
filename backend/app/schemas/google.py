"""
DocBridge Backend — Google Request/Response Schemas
=====================================================

What:  Request bodies and responses for the auth, drive and sheets routes.
Why:   The plugin manifest was written against camelCase field names
       (fileId, valueInputOption); aliases keep that wire format while the
       Python side stays snake_case.
"""

from typing import Any, List, Literal

from pydantic import BaseModel, Field


class AuthUrlResponse(BaseModel):
    url: str = Field(description="Google consent page to open in a browser")


class AuthCallbackResponse(BaseModel):
    message: str
    user: str


class DriveFile(BaseModel):
    id: str
    name: str


class SheetsReadRequest(BaseModel):
    user: str = Field(default="default", description="Id the user signed in with")
    file_id: str = Field(alias="fileId", min_length=1, description="Spreadsheet id")
    range: str = Field(min_length=1, description="A1 notation, e.g. Sheet1!A1:C10")

    model_config = {"populate_by_name": True}


class SheetsWriteRequest(SheetsReadRequest):
    values: List[List[Any]] = Field(description="Rows of cell values")
    value_input_option: Literal["RAW", "USER_ENTERED"] = Field(
        default="RAW",
        alias="valueInputOption",
        description="RAW stores values as-is; USER_ENTERED parses them like the Sheets UI",
    )

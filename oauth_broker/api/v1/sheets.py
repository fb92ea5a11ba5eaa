"""
Google Sheets API endpoints (requires a Google connection).

- GET  /oauth/sheets/read - read a range as header + rows
- POST /oauth/sheets/append - append rows
"""

from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, Query, status
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from oauth_broker.common.dependencies import get_current_user, get_sheets_service
from oauth_broker.common.exceptions import (
    BadGatewayException,
    BadRequestException,
    NotFoundException,
    UnauthorizedException,
)
from oauth_broker.common.response import success_response
from oauth_broker.core.oauth.errors import ConnectionNotFound, OAuthError, TokenExpiredAndRefreshFailed
from oauth_broker.models.user import User
from oauth_broker.services.google_sheets_service import GoogleSheetsService, extract_spreadsheet_id

LOG_PREFIX = "[SheetsAPI]"
router = APIRouter(prefix="/oauth/sheets", tags=["Google Sheets"])


class AppendRowsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    spreadsheet_id: str = Field("", alias="spreadsheetId")
    columns: List[str] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    range: str = "Sheet1!A1"


def _require_spreadsheet_id(value: Optional[str]) -> str:
    spreadsheet_id = extract_spreadsheet_id(value or "")
    if not spreadsheet_id:
        raise BadRequestException("spreadsheetId parameter is required")
    return spreadsheet_id


def _raise_for(error: OAuthError) -> NoReturn:
    if isinstance(error, ConnectionNotFound):
        raise NotFoundException("No Google OAuth connection found for user.")
    if isinstance(error, TokenExpiredAndRefreshFailed):
        raise UnauthorizedException(error.message, data={"reason": error.reason})
    logger.error(f"{LOG_PREFIX} Google Sheets request failed: {error.reason} - {error.message}")
    raise BadGatewayException(f"Failed to access Google Sheets: {error.message}", data={"reason": error.reason})


@router.get("/read")
async def read_sheet(
    spreadsheet_id: Optional[str] = Query(None, alias="spreadsheetId", description="Spreadsheet id or URL"),
    range_: str = Query("Sheet1", alias="range"),
    current_user: User = Depends(get_current_user),
    sheets: GoogleSheetsService = Depends(get_sheets_service),
) -> Dict[str, Any]:
    sheet_id = _require_spreadsheet_id(spreadsheet_id)
    try:
        data = await sheets.read_sheet(current_user.id, sheet_id, range_)
    except OAuthError as e:
        _raise_for(e)
    return success_response(data=data)


@router.post("/append", status_code=status.HTTP_201_CREATED)
async def append_rows(
    body: AppendRowsRequest,
    current_user: User = Depends(get_current_user),
    sheets: GoogleSheetsService = Depends(get_sheets_service),
) -> Dict[str, Any]:
    sheet_id = _require_spreadsheet_id(body.spreadsheet_id)
    if not body.columns or not body.rows:
        raise BadRequestException("columns and rows are required")
    try:
        data = await sheets.append_rows(current_user.id, sheet_id, body.rows, body.columns, body.range)
    except OAuthError as e:
        _raise_for(e)
    return success_response(data=data, code=status.HTTP_201_CREATED)

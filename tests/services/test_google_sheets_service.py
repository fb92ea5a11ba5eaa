import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from oauth_broker.core.oauth.errors import ConnectionNotFound
from oauth_broker.services.google_sheets_service import (
    GoogleSheetsService,
    SheetsApiError,
    extract_spreadsheet_id,
)

READ_URL = "https://sheets.googleapis.com/v4/spreadsheets/sheet-1/values/Sheet1"
APPEND_URL = "https://sheets.googleapis.com/v4/spreadsheets/sheet-1/values/Sheet1!A1:append"


@pytest.fixture
def tokens():
    tokens = MagicMock()
    tokens.get_valid_access_token_for = AsyncMock(return_value="sheets-at")
    return tokens


@pytest.fixture
def sheets(tokens, transport):
    return GoogleSheetsService(tokens, transport)


def test_extract_spreadsheet_id():
    url = "https://docs.google.com/spreadsheets/d/1AbC-d_E/edit#gid=0"
    assert extract_spreadsheet_id(url) == "1AbC-d_E"
    assert extract_spreadsheet_id("1AbC-d_E") == "1AbC-d_E"
    assert extract_spreadsheet_id("not a sheet") is None
    assert extract_spreadsheet_id("") is None


@pytest.mark.asyncio
async def test_read_sheet_maps_rows_to_header(sheets, tokens, provider_http):
    provider_http.add(
        "GET",
        READ_URL,
        json={"values": [["name", "email", "role"], ["Ada", "ada@example.com"], ["Grace", "grace@example.com", "admin"]]},
    )

    data = await sheets.read_sheet("user-1", "sheet-1")

    assert data["header"] == ["name", "email", "role"]
    assert data["rows"] == [
        {"name": "Ada", "email": "ada@example.com", "role": ""},
        {"name": "Grace", "email": "grace@example.com", "role": "admin"},
    ]
    tokens.get_valid_access_token_for.assert_awaited_once_with("user-1", "google")
    assert provider_http.requests[0].headers["Authorization"] == "Bearer sheets-at"


@pytest.mark.asyncio
async def test_read_empty_sheet(sheets, provider_http):
    provider_http.add("GET", READ_URL, json={"range": "Sheet1!A1:Z1000"})

    assert await sheets.read_sheet("user-1", "sheet-1") == {"header": [], "rows": []}


@pytest.mark.asyncio
async def test_append_rows_orders_values_by_columns(sheets, provider_http):
    provider_http.add(
        "POST",
        APPEND_URL,
        json={"updates": {"updatedRows": 2, "updatedRange": "Sheet1!A2:B3"}},
    )

    result = await sheets.append_rows(
        "user-1",
        "sheet-1",
        rows=[{"email": "ada@example.com", "name": "Ada"}, {"name": "Grace", "score": 3}],
        columns=["name", "email"],
    )

    assert result == {"updatedRows": 2, "updatedRange": "Sheet1!A2:B3"}
    request = provider_http.find("POST", APPEND_URL)[0]
    assert json.loads(request.content) == {"values": [["Ada", "ada@example.com"], ["Grace", ""]]}
    assert request.url.params["valueInputOption"] == "RAW"
    assert request.url.params["insertDataOption"] == "INSERT_ROWS"


@pytest.mark.asyncio
async def test_api_error(sheets, provider_http):
    provider_http.add("GET", READ_URL, status_code=403, json={"error": {"message": "The caller does not have permission"}})

    with pytest.raises(SheetsApiError) as exc_info:
        await sheets.read_sheet("user-1", "sheet-1")

    assert exc_info.value.status_code == 403
    assert "permission" in exc_info.value.detail


@pytest.mark.asyncio
async def test_missing_connection_propagates(sheets, tokens, provider_http):
    tokens.get_valid_access_token_for.side_effect = ConnectionNotFound("no google", provider="google")

    with pytest.raises(ConnectionNotFound):
        await sheets.read_sheet("user-1", "sheet-1")
    assert provider_http.requests == []

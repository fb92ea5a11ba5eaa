"""
Google Sheets access on behalf of a user with a Google connection.

Uses the token lifecycle manager for a valid access token and the Sheets v4
REST API through the same HTTP transport as the provider adapters.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from loguru import logger

from oauth_broker.core.oauth.errors import OAuthError
from oauth_broker.core.oauth.transport import HttpTransport
from oauth_broker.services.token_lifecycle import TokenLifecycleManager

LOG_PREFIX = "[GoogleSheets]"

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
SPREADSHEET_SCOPE = "https://www.googleapis.com/auth/spreadsheets"

_SPREADSHEET_URL_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")
_SPREADSHEET_ID_RE = re.compile(r"^[a-zA-Z0-9-_]+$")


class SheetsApiError(OAuthError):
    reason = "sheets_api_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message, provider="google", detail=detail)
        self.status_code = status_code


def extract_spreadsheet_id(url_or_id: str) -> Optional[str]:
    """Spreadsheet id from a sheet URL, or the value itself when it already is an id."""
    value = (url_or_id or "").strip()
    match = _SPREADSHEET_URL_RE.search(value)
    if match:
        return match.group(1)
    if _SPREADSHEET_ID_RE.match(value):
        return value
    return None


class GoogleSheetsService:
    def __init__(self, tokens: TokenLifecycleManager, transport: HttpTransport):
        self.tokens = tokens
        self.transport = transport

    def _values_url(self, spreadsheet_id: str, range_: str, suffix: str = "") -> str:
        return f"{SHEETS_API_BASE}/{quote(spreadsheet_id, safe='')}/values/{quote(range_, safe='!:')}{suffix}"

    async def _auth_headers(self, user_id: str) -> Dict[str, str]:
        access_token = await self.tokens.get_valid_access_token_for(user_id, "google")
        return {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}

    def _parse(self, response, action: str) -> Dict[str, Any]:
        if not response.ok:
            logger.error(f"{LOG_PREFIX} {action} failed: {response.status_code} - {response.text}")
            raise SheetsApiError(
                f"Google Sheets {action} failed ({response.status_code})",
                status_code=response.status_code,
                detail=response.text,
            )
        try:
            data = response.json()
        except ValueError:
            raise SheetsApiError(f"Google Sheets {action} returned a malformed response", detail=response.text)
        return data if isinstance(data, dict) else {}

    async def read_sheet(self, user_id: str, spreadsheet_id: str, range_: str = "Sheet1") -> Dict[str, Any]:
        """
        Read a range; the first row is the header.

        Returns:
            {"header": [...], "rows": [{column: value}, ...]}
        """
        headers = await self._auth_headers(user_id)
        response = await self.transport.get(self._values_url(spreadsheet_id, range_), headers=headers)
        values: List[List[Any]] = self._parse(response, "read").get("values") or []

        if not values:
            return {"header": [], "rows": []}

        header = [str(col) for col in values[0]]
        rows = [
            {col: (row[idx] if idx < len(row) else "") for idx, col in enumerate(header)}
            for row in values[1:]
        ]
        logger.info(f"{LOG_PREFIX} Read {len(rows)} rows from {spreadsheet_id}")
        return {"header": header, "rows": rows}

    async def append_rows(
        self,
        user_id: str,
        spreadsheet_id: str,
        rows: List[Dict[str, Any]],
        columns: List[str],
        range_: str = "Sheet1!A1",
    ) -> Dict[str, Any]:
        """
        Append rows, ordering each row's values by ``columns``.

        Returns:
            {"updatedRows": int, "updatedRange": str}
        """
        values = [["" if row.get(col) is None else str(row.get(col)) for col in columns] for row in rows]
        headers = await self._auth_headers(user_id)
        response = await self.transport.post_json(
            self._values_url(spreadsheet_id, range_, ":append"),
            {"values": values},
            headers=headers,
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
        )
        updates = self._parse(response, "append").get("updates") or {}
        logger.info(f"{LOG_PREFIX} Appended {updates.get('updatedRows', 0)} rows to {spreadsheet_id}")
        return {
            "updatedRows": updates.get("updatedRows", 0),
            "updatedRange": updates.get("updatedRange"),
        }

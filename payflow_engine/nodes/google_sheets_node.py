"""
Google Sheets node handler: sheets.appendRow and sheets.getRows.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ..exceptions import NodeExecutionError
from .base import NodeHandler, NodeRun

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_RANGE = "Sheet1"


class GoogleSheetsNodeHandler(NodeHandler):
    """Append or read rows with the user's Google OAuth token."""

    node_types = ("googleSheets",)
    operations = ("sheets.appendRow", "sheets.getRows")

    @staticmethod
    def _access_token(run: NodeRun) -> Optional[str]:
        for provider in ("googleSheets", "google"):
            credential = run.context.get_credential(provider)
            if credential is not None and credential.access_token:
                return credential.access_token
        return None

    @staticmethod
    def row_values(config: Dict[str, Any]) -> List[Any]:
        values = config.get("values")
        if isinstance(values, list):
            return values
        row = config.get("row")
        if isinstance(row, dict):
            return list(row.values())
        if isinstance(row, list):
            return row
        return []

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        operation = config.get("operation") or "sheets.appendRow"
        if operation not in self.operations:
            raise NodeExecutionError(
                f"Unsupported Google Sheets operation: {operation}", node_id=run.node.id, node_type=run.node.type
            )

        access_token = self._access_token(run)
        if not access_token:
            raise NodeExecutionError(
                "Google Sheets requires an OAuth2 credential", node_id=run.node.id, node_type=run.node.type
            )

        spreadsheet_id = self.require(config, "spreadsheetId", run)
        cell_range = config.get("range") or config.get("sheetName") or DEFAULT_RANGE
        url = f"{SHEETS_API}/{spreadsheet_id}/values/{quote(str(cell_range), safe='')}"
        headers = {"Authorization": f"Bearer {access_token}"}

        if operation == "sheets.getRows":
            response = await self.make_http_request("GET", url, headers=headers)
            self.raise_for_status(response, "Google Sheets")
            rows = response.json().get("values") or []
            return {"spreadsheetId": spreadsheet_id, "range": cell_range, "rows": rows, "count": len(rows)}

        values = self.row_values(config)
        if not values:
            raise NodeExecutionError("Row values are required", node_id=run.node.id, node_type=run.node.type)

        response = await self.make_http_request(
            "POST",
            f"{url}:append",
            headers=headers,
            params={"valueInputOption": "USER_ENTERED"},
            json_data={"values": [values]},
        )
        self.raise_for_status(response, "Google Sheets")

        updates = response.json().get("updates") or {}
        run.log(f"Appended {len(values)} value(s) to {cell_range}")
        return {
            "spreadsheetId": spreadsheet_id,
            "updatedRange": updates.get("updatedRange"),
            "updatedRows": updates.get("updatedRows", 1),
            "values": values,
        }

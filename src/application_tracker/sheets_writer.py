"""Job application store kept in a Google Sheet, one row per application."""

import json
import os
import uuid
from typing import Any, Dict, List, Optional

import gspread
from gspread.utils import rowcol_to_a1
from loguru import logger

from .store import ApplicationStore, Document, DocumentNotFound, apply_query, merge

HEADERS = [
    "id", "userId", "jobId",
    "applicantInfo.name", "applicantInfo.phoneNumber", "applicantInfo.email", "applicantInfo.cvUrl",
    "companyName", "companyLogo", "role", "location", "status", "isInternship",
    "dateApplied", "dateInterview", "dateAction", "dateRejected", "dateOffer",
    "timeline", "unsured", "jobDescription", "salary", "notes", "referred",
]
BOOL_COLUMNS = {"isInternship", "unsured", "referred"}
JSON_COLUMNS = {"timeline"}


def _get_client(service_account_json: str = "", credentials_dir: str = "credentials"):
    sa_path = (service_account_json or os.getenv("GSPREAD_SERVICE_ACCOUNT_JSON", "")).strip()
    if sa_path:
        return gspread.service_account(filename=sa_path)
    return gspread.oauth(
        credentials_filename=os.path.join(credentials_dir, "client_secret.json"),
        authorized_user_filename=os.path.join(credentials_dir, "token.json"),
    )


class SheetLayoutError(RuntimeError):
    pass


def _row_range(r: int) -> str:
    return f"A{r}:{rowcol_to_a1(r, len(HEADERS))}"


def ensure_sheet(gc, spreadsheet_name: str, worksheet_name: str):
    """Open (or create) the applications worksheet and check its header row.

    A header row that is a prefix of ``HEADERS`` is an older layout and gets
    the missing columns appended on the right. Any other header row belongs
    to some other sheet, and rewriting it would misalign existing rows, so it
    is refused.
    """
    try:
        sh = gc.open(spreadsheet_name)
    except gspread.SpreadsheetNotFound:
        logger.info("[Sheets] Creating spreadsheet '{}'", spreadsheet_name)
        sh = gc.create(spreadsheet_name)
    try:
        ws = sh.worksheet(worksheet_name)
    except gspread.WorksheetNotFound:
        ws = sh.add_worksheet(title=worksheet_name, rows=1000, cols=len(HEADERS))

    current = ws.row_values(1)
    if current == HEADERS:
        return ws
    if current != HEADERS[:len(current)]:
        raise SheetLayoutError(
            f"Worksheet '{worksheet_name}' has unexpected headers {current!r}; "
            "point store.worksheet_name at an empty or tracker-owned worksheet")
    if current:
        logger.warning("[Sheets] Adding {} missing column(s) to '{}'", len(HEADERS) - len(current), worksheet_name)
    ws.update(range_name=_row_range(1), values=[HEADERS], value_input_option="RAW")
    return ws


def flatten(doc_id: str, data: Dict[str, Any]) -> List[Any]:
    row = []
    for header in HEADERS:
        if header == "id":
            row.append(doc_id)
            continue
        head, _, tail = header.partition(".")
        value = data.get(head)
        if tail:
            value = value.get(tail) if isinstance(value, dict) else None
        if value is None:
            row.append("")
        elif header in JSON_COLUMNS:
            row.append(json.dumps(value))
        elif header in BOOL_COLUMNS:
            row.append("true" if value else "false")
        else:
            row.append(value)
    return row


def unflatten(row: Dict[str, Any]) -> Document:
    data: Dict[str, Any] = {}
    for header in HEADERS[1:]:
        raw = row.get(header, "")
        if raw == "" or raw is None:
            continue
        if header in JSON_COLUMNS:
            value = json.loads(raw)
        elif header in BOOL_COLUMNS:
            value = str(raw).lower() == "true"
        else:
            value = str(raw)
        head, _, tail = header.partition(".")
        if tail:
            data.setdefault(head, {})[tail] = value
        else:
            data[head] = value
    return Document(str(row.get("id", "")), data)


class SheetsApplicationStore(ApplicationStore):
    """Sheet-backed store.

    Filtering happens client side over the whole worksheet. ``batch_update``
    goes out as a single values.batchUpdate request, which Sheets applies
    all-or-nothing.
    """

    def __init__(self, ws):
        self.ws = ws

    @classmethod
    def open(cls, spreadsheet_name: str, worksheet_name: str, service_account_json: str = "",
             credentials_dir: str = "credentials") -> "SheetsApplicationStore":
        gc = _get_client(service_account_json, credentials_dir)
        return cls(ensure_sheet(gc, spreadsheet_name, worksheet_name))

    def _row_index(self) -> Dict[str, int]:
        ids = self.ws.col_values(1)
        return {doc_id: i + 1 for i, doc_id in enumerate(ids) if i > 0 and doc_id}

    def _read_row(self, r: int) -> Document:
        values = self.ws.row_values(r)
        values += [""] * (len(HEADERS) - len(values))
        return unflatten(dict(zip(HEADERS, values)))

    def query(self, filters, order_by=None):
        records = self.ws.get_all_records(expected_headers=HEADERS, numericise_ignore=["all"])
        docs = []
        for i, r in enumerate(records, start=2):
            if not r.get("id"):
                continue
            try:
                docs.append(unflatten(r))
            except ValueError as e:
                # the sheet is user-editable
                logger.warning("[Sheets] Skipping row {} ({}): {}", i, r.get("id"), e)
        return apply_query(docs, filters, order_by)

    def get(self, doc_id) -> Optional[Document]:
        r = self._row_index().get(doc_id)
        if r is None:
            return None
        return self._read_row(r)

    def create(self, data):
        doc_id = uuid.uuid4().hex
        self.ws.append_row(flatten(doc_id, data), value_input_option="RAW")
        logger.info("[Sheets] Appended application {}", doc_id)
        return doc_id

    def update_merge(self, doc_id, partial):
        r = self._row_index().get(doc_id)
        if r is None:
            raise DocumentNotFound(doc_id)
        merged = merge(self._read_row(r).data, partial)
        self.ws.update(range_name=_row_range(r), values=[flatten(doc_id, merged)],
                       value_input_option="RAW")

    def batch_update(self, updates):
        index = self._row_index()
        missing = [doc_id for doc_id, _ in updates if doc_id not in index]
        if missing:
            raise DocumentNotFound(", ".join(missing))
        data = []
        for doc_id, partial in updates:
            r = index[doc_id]
            merged = merge(self._read_row(r).data, partial)
            data.append({"range": _row_range(r), "values": [flatten(doc_id, merged)]})
        if data:
            self.ws.batch_update(data, value_input_option="RAW")
        logger.info("[Sheets] Batch-updated {} row(s)", len(data))

"""Destinations for imported records."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Protocol

import requests

from ledger_import.errors import RowSubmitError
from ledger_import.models import CanonicalRecord, ExpenseDraft, IncomeDraft

logger = logging.getLogger(__name__)


class RecordSink(Protocol):
    def create_expense(self, draft: ExpenseDraft) -> Any: ...

    def create_income(self, draft: IncomeDraft) -> Any: ...


class RestSink:
    """
    Posts one JSON record per request to ``<base_url>/expenses`` or
    ``<base_url>/income``. The API key, when present, is sent both as an
    ``apikey`` header and as a bearer token. Any transport error or non-2xx
    response becomes RowSubmitError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("RestSink needs a base URL")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
        if api_key:
            self.session.headers.update({"apikey": api_key, "Authorization": f"Bearer {api_key}"})

    def _post(self, endpoint: str, draft: CanonicalRecord) -> Any:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = self.session.post(url, json=draft.as_payload(), timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise RowSubmitError(f"{url} returned HTTP {status}", status_code=status) from exc
        except requests.RequestException as exc:
            raise RowSubmitError(f"Could not reach {url}: {exc}") from exc
        logger.debug("POST %s -> %s", url, response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def create_expense(self, draft: ExpenseDraft) -> Any:
        return self._post("expenses", draft)

    def create_income(self, draft: IncomeDraft) -> Any:
        return self._post("income", draft)


class JsonlSink:
    """Appends each record as one JSON line, tagged with its kind."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _append(self, draft: CanonicalRecord) -> None:
        line = json.dumps({"type": draft.tag.value, **draft.as_payload()}, ensure_ascii=False, sort_keys=True)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            raise RowSubmitError(f"Could not write {self.path}: {exc}") from exc

    def create_expense(self, draft: ExpenseDraft) -> None:
        self._append(draft)

    def create_income(self, draft: IncomeDraft) -> None:
        self._append(draft)


class RecordingSink:
    """Keeps records in memory. Used for dry runs."""

    def __init__(self) -> None:
        self.expenses: list[ExpenseDraft] = []
        self.income: list[IncomeDraft] = []

    def create_expense(self, draft: ExpenseDraft) -> None:
        self.expenses.append(draft)

    def create_income(self, draft: IncomeDraft) -> None:
        self.income.append(draft)

    @property
    def records(self) -> list[CanonicalRecord]:
        return [*self.expenses, *self.income]

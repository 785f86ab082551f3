"""
Client for the remote bank-transaction ingestion procedure.

The procedure lives behind a PostgREST-style RPC endpoint and owns
authorization, de-duplication and persistence. This module only forwards an
already-normalized row set and reports what the procedure says it did.
There is no retry: callers resubmit the same rows if a submission fails.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import requests

from statement_importer.logging_setup import get_logger
from statement_importer.normalizer import NormalizedRow

logger = get_logger(__name__)

IMPORT_PROCEDURE = "erp_bank_txn_import_icici_csv"
DEFAULT_SOURCE = "icici"
DEFAULT_TIMEOUT = 30

ENV_API_URL = "STATEMENT_IMPORTER_API_URL"
ENV_API_KEY = "STATEMENT_IMPORTER_API_KEY"
ENV_ACCESS_TOKEN = "STATEMENT_IMPORTER_ACCESS_TOKEN"


class IngestionError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


@dataclass(frozen=True)
class ImportErrorRow:
    row: Mapping[str, Any]
    error: str


@dataclass(frozen=True)
class ImportSummary:
    inserted: int
    skipped: int
    errors: int
    error_rows: tuple[ImportErrorRow, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: Any) -> "ImportSummary":
        if isinstance(payload, list) and len(payload) == 1:
            payload = payload[0]
        if not isinstance(payload, dict):
            raise IngestionError(f"Unexpected ingestion response: {payload!r}")
        try:
            error_rows = tuple(
                ImportErrorRow(row=item.get("row") or {}, error=str(item.get("error") or ""))
                for item in payload.get("error_rows") or []
            )
            return cls(
                inserted=int(payload.get("inserted") or 0),
                skipped=int(payload.get("skipped") or 0),
                errors=int(payload.get("errors") or 0),
                error_rows=error_rows,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise IngestionError(f"Malformed ingestion response: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": self.errors,
            "error_rows": [{"row": dict(item.row), "error": item.error} for item in self.error_rows],
        }


def _error_message(response: requests.Response) -> tuple[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return text or f"HTTP {response.status_code}", None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error") or f"HTTP {response.status_code}"
        return str(message), payload.get("details") or payload.get("hint") or payload.get("code")
    return f"HTTP {response.status_code}", payload


class IngestionClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise IngestionError(f"Ingestion API URL is required (set {ENV_API_URL} or pass --api-url)")
        if not api_key:
            raise IngestionError(f"Ingestion API key is required (set {ENV_API_KEY} or pass --api-key)")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides: Any) -> "IngestionClient":
        env = os.environ if env is None else env
        base_url = overrides.pop("base_url", None) or env.get(ENV_API_URL, "")
        api_key = overrides.pop("api_key", None) or env.get(ENV_API_KEY, "")
        access_token = overrides.pop("access_token", None) or env.get(ENV_ACCESS_TOKEN) or None
        return cls(base_url, api_key, access_token, **overrides)

    def procedure_url(self, name: str = IMPORT_PROCEDURE) -> str:
        return f"{self.base_url}/rest/v1/rpc/{name}"

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def submit_rows(
        self,
        rows: Sequence[NormalizedRow],
        *,
        source: str = DEFAULT_SOURCE,
        account_ref: Optional[str] = None,
    ) -> ImportSummary:
        """Forward normalized rows to the import procedure and return its summary."""
        if not rows:
            raise IngestionError("Refusing to submit an empty statement; nothing was parsed.")

        body = {
            "p_rows": [row.to_dict() for row in rows],
            "p_source": source,
            "p_account_ref": (account_ref or "").strip() or None,
        }
        url = self.procedure_url()
        logger.info("submitting %d rows to %s", len(rows), url)
        try:
            response = self.session.post(url, json=body, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise IngestionError(f"Could not reach ingestion endpoint: {exc}") from exc

        if not response.ok:
            message, details = _error_message(response)
            raise IngestionError(message, status_code=response.status_code, details=details)

        try:
            payload = response.json()
        except ValueError as exc:
            raise IngestionError(f"Ingestion endpoint returned invalid JSON: {exc}") from exc

        summary = ImportSummary.from_payload(payload)
        logger.info(
            "ingestion finished: inserted=%d skipped=%d errors=%d",
            summary.inserted,
            summary.skipped,
            summary.errors,
        )
        return summary

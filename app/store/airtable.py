"""
Cozy Connect — Airtable record store.

Talks to the Airtable REST API (``/v0/{base}/{table}``) over a shared
``httpx.AsyncClient``.  Filters arrive as ``app.store.query`` conditions and
are compiled to formulas here, so no caller ever interpolates identifiers
into formula text.

Reads (``select`` / ``find``) are idempotent and are retried with tenacity on
HTTP 429, 5xx and transport errors.  Writes are sent exactly once.  Every
failure surfaces as ``StoreUnavailable`` carrying the upstream message.

Airtable has no uniqueness constraint, so ``unique_key`` is accepted and
ignored; see ``MatchService`` for how duplicate pair records are tolerated.
"""

from __future__ import annotations

from typing import Any, Sequence

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.errors import StoreUnavailable
from app.store.base import Record, RecordStore, Sort
from app.store.query import Condition, check_identifier, to_formula

logger = structlog.get_logger("cozy.store.airtable")

# Airtable caps pageSize at 100 records.
_PAGE_SIZE = 100


class _RetryableStoreError(Exception):
    """Transient upstream failure worth another read attempt."""


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (_RetryableStoreError, httpx.TransportError))


def _to_record(payload: dict[str, Any]) -> Record:
    return Record(
        id=payload["id"],
        fields=dict(payload.get("fields") or {}),
        created_time=payload.get("createdTime"),
    )


class AirtableRecordStore(RecordStore):
    """Airtable-backed ``RecordStore``.

    Parameters
    ----------
    api_key, base_id:
        Credentials for the base.  When either is empty the store still
        constructs, but every operation raises ``StoreUnavailable``.
    endpoint_url:
        API root, ``https://api.airtable.com`` in production.
    timeout:
        Per-request timeout in seconds.
    read_attempts:
        Total attempts for idempotent reads.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject one backed by
        ``httpx.MockTransport``).
    """

    backend_name = "airtable"

    def __init__(
        self,
        api_key: str,
        base_id: str,
        *,
        endpoint_url: str = "https://api.airtable.com",
        timeout: float = 10.0,
        read_attempts: int = 3,
        retry_wait_min: float = 0.5,
        retry_wait_max: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        # Airtable maintains its own "Last Modified" field.
        super().__init__(last_modified_field=None)
        self._api_key = api_key
        self._base_id = base_id
        self._read_attempts = read_attempts
        self._retry_wait_min = retry_wait_min
        self._retry_wait_max = retry_wait_max
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=endpoint_url.rstrip("/"),
            timeout=timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self._base_id)

    # ── Public API ────────────────────────────────────────────────────────

    async def select(
        self,
        table: str,
        *,
        where: Condition | None = None,
        max_records: int | None = None,
        fields: Sequence[str] | None = None,
        sort: Sequence[Sort] | None = None,
    ) -> list[Record]:
        params: list[tuple[str, str]] = [("pageSize", str(_PAGE_SIZE))]
        if where is not None:
            params.append(("filterByFormula", to_formula(where)))
        if max_records is not None:
            params.append(("maxRecords", str(max_records)))
        for name in fields or []:
            params.append(("fields[]", name))
        for i, spec in enumerate(sort or []):
            params.append((f"sort[{i}][field]", spec.field))
            params.append((f"sort[{i}][direction]", "desc" if spec.descending else "asc"))

        records: list[Record] = []
        offset: str | None = None
        while True:
            page_params = params + ([("offset", offset)] if offset else [])
            payload = await self._read("GET", self._table_path(table), params=page_params)
            records.extend(_to_record(r) for r in payload.get("records", []))
            offset = payload.get("offset")
            if not offset or (max_records is not None and len(records) >= max_records):
                break

        if max_records is not None:
            records = records[:max_records]
        logger.debug("airtable_select", table=table, count=len(records))
        return records

    async def find(self, table: str, record_id: str) -> Record | None:
        check_identifier(record_id)
        payload = await self._read(
            "GET", f"{self._table_path(table)}/{record_id}", not_found_ok=True
        )
        return _to_record(payload) if payload is not None else None

    async def create(
        self,
        table: str,
        fields: dict[str, Any],
        *,
        unique_key: str | None = None,
    ) -> Record:
        payload = await self._write(
            "POST", self._table_path(table), json={"records": [{"fields": fields}]}
        )
        records = payload.get("records") or []
        if not records:
            raise StoreUnavailable(f"Airtable returned no record for create in {table}")
        record = _to_record(records[0])
        logger.info("airtable_record_created", table=table, record_id=record.id)
        return record

    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        check_identifier(record_id)
        payload = await self._write(
            "PATCH", f"{self._table_path(table)}/{record_id}", json={"fields": fields}
        )
        logger.info("airtable_record_updated", table=table, record_id=record_id)
        return _to_record(payload)

    async def delete(self, table: str, record_id: str) -> None:
        check_identifier(record_id)
        await self._write("DELETE", f"{self._table_path(table)}/{record_id}")
        logger.info("airtable_record_deleted", table=table, record_id=record_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ── Transport helpers ─────────────────────────────────────────────────

    def _table_path(self, table: str) -> str:
        return f"/v0/{self._base_id}/{table}"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise StoreUnavailable("Airtable base not initialized: AIRTABLE_API_KEY and AIRTABLE_BASE_ID are required")

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self._client.request(method, path, headers=self._headers(), **kwargs)

    async def _read(
        self,
        method: str,
        path: str,
        *,
        not_found_ok: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """Issue an idempotent request with retry on transient failures."""
        self._ensure_configured()
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_is_retryable),
                stop=stop_after_attempt(self._read_attempts),
                wait=wait_exponential(
                    multiplier=0.5,
                    min=self._retry_wait_min,
                    max=self._retry_wait_max,
                ),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "airtable_read_retry",
                            path=path,
                            attempt_number=attempt.retry_state.attempt_number,
                        )
                    response = await self._send(method, path, **kwargs)
                    if response.status_code == 429 or response.status_code >= 500:
                        raise _RetryableStoreError(_describe(response))
                    if response.status_code == 404 and not_found_ok:
                        return None
                    if response.is_error:
                        raise StoreUnavailable(_describe(response))
                    return response.json()
        except _RetryableStoreError as exc:
            logger.error("airtable_read_failed", path=path, error=str(exc))
            raise StoreUnavailable(str(exc)) from exc
        except httpx.HTTPError as exc:
            logger.error("airtable_read_failed", path=path, error=str(exc))
            raise StoreUnavailable(f"Airtable request failed: {exc}") from exc
        return None  # pragma: no cover - AsyncRetrying always yields

    async def _write(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Issue a non-idempotent request exactly once."""
        self._ensure_configured()
        try:
            response = await self._send(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("airtable_write_failed", method=method, path=path, error=str(exc))
            raise StoreUnavailable(f"Airtable request failed: {exc}") from exc
        if response.is_error:
            logger.error(
                "airtable_write_failed",
                method=method,
                path=path,
                status=response.status_code,
            )
            raise StoreUnavailable(_describe(response))
        return response.json() if response.content else {}


def _describe(response: httpx.Response) -> str:
    """Render an Airtable error body as ``<status> <type>: <message>``."""
    detail = ""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            detail = f"{error.get('type', '')}: {error.get('message', '')}".strip(": ")
        elif error:
            detail = str(error)
    return f"Airtable responded {response.status_code}" + (f" {detail}" if detail else "")

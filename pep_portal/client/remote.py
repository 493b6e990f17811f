"""
HTTP client for the portal's remote procedures.

Every call carries the held bearer token; non-2xx responses and transport
failures surface as RemoteError.
"""
import asyncio
import logging
import threading
from typing import Any

import httpx

from pep_portal.client.config import client_settings
from pep_portal.client.errors import NotAuthenticatedError, RemoteError
from pep_portal.client.identity import IdentityProvider
from pep_portal.schemas.directory import DirectoryRecordOut, HierarchyResponse
from pep_portal.schemas.evaluation import (
    DocumentUploadResult,
    EvaluationOut,
    EvaluationRecord,
    SaveEvaluationPayload,
    SubmitEvaluationPayload,
)

logger = logging.getLogger(__name__)


def _detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text
    return body.get("detail", body) if isinstance(body, dict) else body


def save_payload(record: EvaluationRecord) -> dict:
    return SaveEvaluationPayload(
        evaluation_id=record.id,
        period_year=record.period_year,
        status=record.status,
        **record.sections(),
    ).model_dump(mode="json")


def _log_beacon_response(response: httpx.Response) -> None:
    if response.status_code >= 400:
        logger.warning("Unload save rejected: [%s] %s", response.status_code, _detail(response))
    else:
        logger.debug("Unload save returned %s", response.status_code)


class RemoteStore:
    def __init__(
        self,
        identity: IdentityProvider,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sync_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.identity = identity
        self.base_url = (base_url or client_settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout or client_settings.REQUEST_TIMEOUT_SECONDS
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=transport)
        self._sync_transport = sync_transport
        self._beacons: set[asyncio.Task] = set()

    async def __aenter__(self) -> "RemoteStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        # let in-flight unload saves finish before the connection pool goes away
        if self._beacons:
            await asyncio.gather(*list(self._beacons))
        await self._client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        token = self.identity.token
        if token is None:
            raise NotAuthenticatedError("No credential held")
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteError(None, f"{type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise RemoteError(response.status_code, _detail(response))
        if not response.content:
            return None
        return response.json()

    # -- evaluations ---------------------------------------------------------

    async def fetch_evaluation(self, period_year: int) -> EvaluationOut | None:
        body = await self._request("GET", f"/evaluations/{period_year}")
        return EvaluationOut.model_validate(body) if body else None

    async def fetch_evaluation_by_id(self, evaluation_id: str) -> EvaluationOut:
        body = await self._request("GET", f"/evaluations/by-id/{evaluation_id}")
        return EvaluationOut.model_validate(body)

    async def save_evaluation(self, record: EvaluationRecord) -> str:
        body = await self._request("POST", "/evaluations/save", json=save_payload(record))
        return body["id"]

    async def submit_evaluation(
        self,
        evaluation_id: str,
        record: EvaluationRecord,
        pdf_url: str | None = None,
    ) -> None:
        payload = SubmitEvaluationPayload(evaluation_id=evaluation_id, pdf_url=pdf_url, **record.sections())
        await self._request("POST", "/evaluations/submit", json=payload.model_dump(mode="json"))

    async def reopen_evaluation(self, evaluation_id: str, reason: str) -> None:
        await self._request(
            "POST",
            "/evaluations/reopen",
            json={"evaluation_id": evaluation_id, "reason": reason},
        )

    async def upload_document(self, evaluation_id: str, data: bytes) -> DocumentUploadResult:
        body = await self._request(
            "PUT",
            f"/evaluations/{evaluation_id}/document",
            files={"file": ("evaluation.pdf", data, "application/pdf")},
        )
        return DocumentUploadResult.model_validate(body)

    # -- directory -------------------------------------------------------------

    async def fetch_directory_record(self, employee_id: str) -> DirectoryRecordOut:
        body = await self._request("GET", f"/directory/{employee_id}")
        return DirectoryRecordOut.model_validate(body)

    async def check_subordinates(self) -> bool:
        body = await self._request("GET", "/team/check-subordinates")
        return bool(body["has_subordinates"])

    async def team_hierarchy(self, period_year: int) -> HierarchyResponse:
        body = await self._request("GET", "/team/hierarchy", params={"year": period_year})
        return HierarchyResponse.model_validate(body)

    async def company_hierarchy(self, period_year: int) -> HierarchyResponse:
        body = await self._request("GET", "/company/hierarchy", params={"year": period_year})
        return HierarchyResponse.model_validate(body)

    # -- unload ----------------------------------------------------------------

    def send_beacon(self, record: EvaluationRecord) -> None:
        """
        Fire-and-forget save with no result channel. Runs as a detached task
        when a loop is running, otherwise on a daemon thread.
        """
        payload = save_payload(record)
        headers = self._auth_headers()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            thread = threading.Thread(target=self._beacon_sync, args=(payload, headers), daemon=True)
            thread.start()
            return
        task = loop.create_task(self._beacon(payload, headers))
        self._beacons.add(task)
        task.add_done_callback(self._beacons.discard)

    async def _beacon(self, payload: dict, headers: dict[str, str]) -> None:
        try:
            response = await self._client.post("/evaluations/save", json=payload, headers=headers)
            _log_beacon_response(response)
        except httpx.HTTPError as exc:
            logger.warning("Unload save failed: %s", exc)

    def _beacon_sync(self, payload: dict, headers: dict[str, str]) -> None:
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._sync_transport) as client:
                response = client.post("/evaluations/save", json=payload, headers=headers)
            _log_beacon_response(response)
        except httpx.HTTPError as exc:
            logger.warning("Unload save failed: %s", exc)

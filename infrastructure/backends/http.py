import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import httpx

from domain.errors import BackendError
from domain.schemas import (
    AIJob,
    AnnotationInput,
    JobStatus,
    RecordPage,
    RecordStatus,
    Sentence,
    SubmissionRequest,
    SubmissionResult,
    Taxonomy,
    TaxonomyNode,
)
from infrastructure.backends.base import WorkstationBackend
from infrastructure.backends.registry import register_backend
from infrastructure.config.models import BackendKind, WorkstationConfig

logger = logging.getLogger(__name__)

# Server-side cap on the nodes route page size
NODE_PAGE_LIMIT = 500
RECORD_FIELD_SLOTS = 5


def _taxonomy_key_of(payload: dict[str, Any]) -> str | None:
    """Nested `taxonomy: {key}` (as included by the server) or a flat `taxonomyKey`."""
    nested = payload.get("taxonomy")
    if isinstance(nested, dict) and nested.get("key"):
        return str(nested["key"])
    key = payload.get("taxonomyKey")
    return str(key) if key else None


def _record_fields(raw: dict[str, Any]) -> dict[str, str]:
    """
    Named field values of a sentence row.

    Rows store up to five positional columns (field1..field5) plus a
    fieldMapping whose keys are either "1" or "field1" and whose values are the
    column names from the import. Without a mapping the positional names are used.
    """
    mapping = raw.get("fieldMapping") or {}
    fields: dict[str, str] = {}
    if mapping:
        for slot, name in mapping.items():
            column = slot if str(slot).startswith("field") else f"field{slot}"
            value = raw.get(column)
            if value:
                fields[str(name)] = str(value)
        return fields

    for i in range(1, RECORD_FIELD_SLOTS + 1):
        value = raw.get(f"field{i}")
        if value:
            fields[f"field{i}"] = str(value)
    return fields


def _parse_sentence(raw: dict[str, Any]) -> Sentence:
    annotations = []
    for ann in raw.get("annotations") or []:
        item = dict(ann)
        item["taxonomyKey"] = _taxonomy_key_of(ann)
        annotations.append(item)

    return Sentence.model_validate(
        {
            "id": raw["id"],
            "fields": raw["fields"] if isinstance(raw.get("fields"), dict) else _record_fields(raw),
            "status": raw.get("status") or RecordStatus.PENDING.value,
            "flagged": bool(raw.get("flagged")),
            "annotations": annotations,
            "lastEditedAt": raw.get("lastEditedAt"),
        }
    )


def _parse_job(raw: dict[str, Any]) -> AIJob:
    data = dict(raw)
    data["taxonomyKey"] = _taxonomy_key_of(raw)
    if data.get("error") is None and raw.get("errorMessage"):
        data["error"] = raw["errorMessage"]
    return AIJob.model_validate(data)


class HttpBackend(WorkstationBackend):
    """
    Annotation server client over its REST routes.

    - Bearer-token auth from api.api_key (AI_LABELING_API_KEY)
    - Error bodies are `{error: "..."}`; any non-2xx becomes BackendError
    - Node listings are paged with offset until the reported total is reached
    """

    kind = BackendKind.HTTP

    def __init__(self, *, cfg: WorkstationConfig, client: httpx.AsyncClient) -> None:
        super().__init__(cfg=cfg)
        self.client = client

    @classmethod
    def from_cfg(
        cls,
        cfg: WorkstationConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "HttpBackend":
        base_url = (cfg.api.base_url or "").rstrip("/")
        headers = {"Content-Type": "application/json"}
        if cfg.api.api_key:
            headers["Authorization"] = f"Bearer {cfg.api.api_key}"

        client = httpx.AsyncClient(
            base_url=base_url,
            timeout=cfg.api.timeout_s,
            headers=headers,
            transport=transport,
        )
        logger.info("HTTP backend targeting %s", base_url)
        return cls(cfg=cfg, client=client)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
    ) -> Any:
        try:
            resp = await self.client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {path} failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.is_error:
            message = data.get("error") if isinstance(data, dict) else None
            raise BackendError(message or f"HTTP {resp.status_code}", status_code=resp.status_code)
        if data is None:
            raise BackendError(f"{method} {path} returned a non-JSON body", status_code=resp.status_code)
        return data

    # ---- Node lookup ----
    async def _paged_nodes(self, taxonomy_key: str, params: dict[str, Any]) -> list[TaxonomyNode]:
        nodes: list[TaxonomyNode] = []
        offset = 0
        while True:
            data = await self._request(
                "GET",
                f"/api/taxonomies/{taxonomy_key}/nodes",
                params={**params, "limit": NODE_PAGE_LIMIT, "offset": offset},
            )
            items = data.get("items") or []
            nodes.extend(TaxonomyNode.model_validate(item) for item in items)
            offset += len(items)
            total = int(data.get("total") or 0)
            if not items or offset >= total:
                return nodes

    async def list_nodes(
        self,
        taxonomy_key: str,
        level: int,
        parent_code: str | None = None,
    ) -> list[TaxonomyNode]:
        params: dict[str, Any] = {"level": level}
        if parent_code is not None:
            params["parentCode"] = parent_code
        return await self._paged_nodes(taxonomy_key, params)

    async def search_nodes(self, taxonomy_key: str, query: str) -> list[TaxonomyNode]:
        # Matches are ranked by the server (level, then code); first page only
        data = await self._request(
            "GET",
            f"/api/taxonomies/{taxonomy_key}/nodes",
            params={"q": query, "limit": NODE_PAGE_LIMIT},
        )
        return [TaxonomyNode.model_validate(item) for item in data.get("items") or []]

    # ---- Taxonomies and sync state ----
    async def list_taxonomies(self, *, active_only: bool = True) -> list[Taxonomy]:
        params = None if active_only else {"includeDeleted": "true"}
        data = await self._request("GET", "/api/taxonomies", params=params)
        taxonomies = [self.parse_taxonomy(t) for t in data.get("taxonomies") or []]
        if active_only:
            taxonomies = [t for t in taxonomies if t.is_active]
        return taxonomies

    # ---- Records and submission ----
    async def get_record(self, record_id: str) -> Sentence:
        data = await self._request("GET", f"/api/sentences/{record_id}")
        return _parse_sentence(data)

    async def list_records(
        self,
        *,
        status: RecordStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> RecordPage:
        params: dict[str, Any] = {"page": page, "limit": limit, "sort": "createdAt", "order": "asc"}
        if status is not None:
            params["status"] = status.value
        data = await self._request("GET", "/api/sentences", params=params)
        pagination = data.get("pagination") or {}
        return RecordPage(
            items=[_parse_sentence(s) for s in data.get("sentences") or []],
            total=int(pagination.get("total") or 0),
            page=int(pagination.get("page") or page),
            limit=int(pagination.get("limit") or limit),
        )

    async def submit_annotations(self, record_id: str, request: SubmissionRequest) -> SubmissionResult:
        body = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        data = await self._request("POST", f"/api/sentences/{record_id}/annotations", json=body)
        return SubmissionResult.model_validate(data)

    async def bulk_label(
        self,
        record_ids: Sequence[str],
        taxonomy_key: str,
        annotations: Sequence[AnnotationInput],
        *,
        flagged: bool | None = None,
        labeling_started_at: datetime | None = None,
    ) -> int:
        body: dict[str, Any] = {
            "sentenceIds": list(record_ids),
            "taxonomyKey": taxonomy_key,
            "annotations": [a.model_dump(mode="json", by_alias=True) for a in annotations],
        }
        if flagged is not None:
            body["flagged"] = flagged
        if labeling_started_at is not None:
            body["labelingStartedAt"] = labeling_started_at.isoformat()

        data = await self._request("POST", "/api/sentences/bulk-label", json=body)
        return int(data.get("labeled") or 0)

    # ---- AI job lifecycle ----
    async def create_job(self, taxonomy_key: str, sentence_ids: Sequence[str]) -> str:
        data = await self._request(
            "POST",
            "/api/ai-labeling/jobs",
            json={"taxonomyKey": taxonomy_key, "sentenceIds": list(sentence_ids)},
        )
        job_id = (data.get("job") or {}).get("id") or data.get("jobId")
        if not job_id:
            raise BackendError(f"AI job response for {taxonomy_key} carried no job id")
        return str(job_id)

    async def get_job(self, job_id: str) -> AIJob:
        data = await self._request("GET", f"/api/ai-labeling/jobs/{job_id}")
        raw = data.get("job")
        if not isinstance(raw, dict):
            raise BackendError(f"AI job {job_id} response carried no job")
        return _parse_job(raw)

    async def list_jobs(self, statuses: Sequence[JobStatus], *, limit: int = 100) -> list[AIJob]:
        params: list[tuple[str, Any]] = [("status", s.value) for s in statuses]
        params.append(("limit", limit))
        data = await self._request("GET", "/api/ai-labeling/jobs", params=params)
        return [_parse_job(j) for j in data.get("jobs") or []]

    async def cancel_job(self, job_id: str) -> JobStatus:
        data = await self._request("POST", f"/api/ai-labeling/jobs/{job_id}/cancel")
        return JobStatus(data.get("status") or JobStatus.CANCELLED.value)

    async def aclose(self) -> None:
        await self.client.aclose()


register_backend(BackendKind.HTTP, HttpBackend)

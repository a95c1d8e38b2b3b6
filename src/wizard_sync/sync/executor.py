"""Apply a SyncOperationPayload to the CRM and record what happened.

One call to ``execute`` is one attempt: categories run in a fixed order
(fields, values, trigger links, tags, media) and any error that escapes
aborts the attempt so the backoff executor can retry the whole batch.
Two error paths are absorbed here instead:

- a 404 on an update-by-reference (values, trigger links) falls back to a
  create and the diff entry is marked ``fallback: True``
- a failed tag create is recorded per name and the loop moves on
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.wizard_sync.core.monitoring import crm_requests_total
from src.wizard_sync.onboarding.schemas import BlockMode
from src.wizard_sync.storage.client import FileStorage
from src.wizard_sync.sync.schemas import (
    CustomFieldOperation,
    CustomValueOperation,
    MediaOperation,
    SyncDiff,
    SyncOperationPayload,
    TagOperation,
    TriggerLinkOperation,
)

logger = structlog.get_logger(__name__)

SKIPPED_FIELD_REASON = "existing field operations not implemented"


def _response_data(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_data(exc: httpx.HTTPError) -> Any:
    if isinstance(exc, httpx.HTTPStatusError):
        return _response_data(exc.response) or str(exc)
    return str(exc)


def _is_not_found(exc: httpx.HTTPError) -> bool:
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 404


class SyncExecutor:
    """Issue CRM calls for one wizard's payload.

    Args:
        storage: File storage used to fetch media uploads by storage key.
    """

    def __init__(self, storage: FileStorage) -> None:
        self._storage = storage

    async def _send(
        self,
        client: httpx.AsyncClient,
        category: str,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError:
            crm_requests_total.labels(category=category, outcome="error").inc()
            raise
        crm_requests_total.labels(category=category, outcome="success").inc()
        return response

    async def execute(self, client: httpx.AsyncClient, payload: SyncOperationPayload) -> SyncDiff:
        """Run every operation in ``payload`` once and return the diff.

        Raises:
            httpx.HTTPError: Any non-isolated CRM or storage failure.
        """
        diff = SyncDiff()
        location_id = payload.location_id

        for field_op in payload.custom_fields:
            diff.fields.append(await self._sync_field(client, location_id, field_op))

        for value_op in payload.custom_values:
            diff.values.append(await self._sync_value(client, location_id, value_op))

        for link_op in payload.trigger_links:
            diff.trigger_links.append(await self._sync_trigger_link(client, location_id, link_op))

        for tag_op in payload.tags:
            diff.tags.extend(await self._sync_tags(client, location_id, tag_op))

        for media_op in payload.media:
            diff.media.append(await self._sync_media(client, media_op))

        logger.info(
            "sync.executor_completed",
            location_id=location_id,
            fields=len(diff.fields),
            values=len(diff.values),
            trigger_links=len(diff.trigger_links),
            tags=len(diff.tags),
            media=len(diff.media),
        )
        return diff

    # ── Custom Fields ───────────────────────────────────────────────────────

    async def _sync_field(
        self, client: httpx.AsyncClient, location_id: str, op: CustomFieldOperation
    ) -> dict[str, Any]:
        if op.mode != BlockMode.CREATE.value:
            return {"blockId": op.block_id, "skipped": True, "reason": SKIPPED_FIELD_REASON}

        request = {
            "name": op.config.name or op.label,
            "dataType": op.config.data_type or "TEXT",
            "placeholder": op.config.placeholder or "",
            "options": op.config.options or [],
        }
        response = await self._send(
            client, "fields", "POST", f"/locations/{location_id}/customFields", json=request
        )
        return {"blockId": op.block_id, "request": request, "response": _response_data(response)}

    # ── Custom Values ───────────────────────────────────────────────────────

    async def _sync_value(
        self, client: httpx.AsyncClient, location_id: str, op: CustomValueOperation
    ) -> dict[str, Any]:
        create_url = f"/locations/{location_id}/customValues"
        create_request = {"name": op.name, "value": op.value}

        if op.mode == BlockMode.CREATE.value or not op.reference_id:
            response = await self._send(client, "values", "POST", create_url, json=create_request)
            return {
                "blockId": op.block_id,
                "request": create_request,
                "response": _response_data(response),
            }

        update_request = {"value": op.value}
        try:
            response = await self._send(
                client, "values", "PUT", f"{create_url}/{op.reference_id}", json=update_request
            )
        except httpx.HTTPError as exc:
            if not _is_not_found(exc):
                raise
            logger.info(
                "sync.custom_value_fallback_create",
                block_id=op.block_id,
                reference_id=op.reference_id,
            )
            fallback = await self._send(client, "values", "POST", create_url, json=create_request)
            return {
                "blockId": op.block_id,
                "request": create_request,
                "response": _response_data(fallback),
                "fallback": True,
            }
        return {
            "blockId": op.block_id,
            "request": update_request,
            "response": _response_data(response),
        }

    # ── Trigger Links ───────────────────────────────────────────────────────

    async def _sync_trigger_link(
        self, client: httpx.AsyncClient, location_id: str, op: TriggerLinkOperation
    ) -> dict[str, Any]:
        request = {"locationId": location_id, "name": op.name, "redirectTo": op.redirect_to}

        if op.mode == BlockMode.EXISTING.value and op.reference_id:
            try:
                response = await self._send(
                    client, "trigger_links", "PUT", f"/links/{op.reference_id}", json=request
                )
            except httpx.HTTPError as exc:
                if not _is_not_found(exc):
                    raise
                logger.info(
                    "sync.trigger_link_fallback_create",
                    block_id=op.block_id,
                    reference_id=op.reference_id,
                )
                fallback = await self._send(client, "trigger_links", "POST", "/links/", json=request)
                return {
                    "blockId": op.block_id,
                    "request": request,
                    "response": _response_data(fallback),
                    "fallback": True,
                }
            return {"blockId": op.block_id, "request": request, "response": _response_data(response)}

        response = await self._send(client, "trigger_links", "POST", "/links/", json=request)
        return {"blockId": op.block_id, "request": request, "response": _response_data(response)}

    # ── Tags ────────────────────────────────────────────────────────────────

    async def _sync_tags(
        self, client: httpx.AsyncClient, location_id: str, op: TagOperation
    ) -> list[dict[str, Any]]:
        entries: list[dict[str, Any]] = []
        for name in op.names:
            if not name:
                continue
            request = {"name": name}
            try:
                response = await self._send(
                    client, "tags", "POST", f"/locations/{location_id}/tags", json=request
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "sync.tag_create_failed",
                    block_id=op.block_id,
                    tag=name,
                    error=str(exc),
                )
                entries.append({"blockId": op.block_id, "request": request, "error": _error_data(exc)})
                continue
            entries.append({"blockId": op.block_id, "request": request, "response": _response_data(response)})
        return entries

    # ── Media ───────────────────────────────────────────────────────────────

    async def _sync_media(self, client: httpx.AsyncClient, op: MediaOperation) -> dict[str, Any]:
        content = await self._storage.download_file(op.storage_key)
        response = await self._send(
            client,
            "media",
            "POST",
            "/medias/upload-file",
            files={"file": (op.name, content, op.mime)},
        )
        return {"blockId": op.block_id, "name": op.name, "response": _response_data(response)}

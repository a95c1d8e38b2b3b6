"""Per-wizard sync workflow.

Order of a run:
1. load the wizard with template and answers (missing -> WizardNotFoundError)
2. resolve a bearer token, refreshing an expiring OAuth grant (fail-open)
3. build the CRM client and the operation payload
4. insert the pending run row
5. execute the payload under the backoff executor
6. finalise the run and the wizard status; failures are re-raised

Steps 1 to 4 abort before any CRM call is made.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from functools import partial

import httpx
import structlog

from src.wizard_sync.config import Settings
from src.wizard_sync.core.monitoring import (
    credential_refresh_total,
    wizard_sync_run_duration_seconds,
    wizard_sync_runs_total,
)
from src.wizard_sync.credentials.refresher import CredentialRefresher
from src.wizard_sync.credentials.schemas import (
    CredentialType,
    OAuthCredential,
    RefreshStatus,
    TokenResolution,
)
from src.wizard_sync.credentials.store import (
    current_access_token,
    decode_credential,
    encode_credential,
    is_access_token_expired,
)
from src.wizard_sync.crm.client import build_crm_client
from src.wizard_sync.onboarding.repository import ConnectionRepository, WizardRepository
from src.wizard_sync.sync.backoff import run_with_backoff
from src.wizard_sync.sync.errors import ConnectionNotFoundError, WizardNotFoundError
from src.wizard_sync.sync.executor import SyncExecutor
from src.wizard_sync.sync.payload import build_payload
from src.wizard_sync.sync.recorder import RunRecorder
from src.wizard_sync.sync.schemas import SyncDiff, SyncOperationPayload

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[str], httpx.AsyncClient]


class WizardSyncService:
    """Runs the full sync workflow for one wizard id at a time.

    Args:
        wizards: Wizard repository.
        connections: Saved connection repository (credential column).
        recorder: Run recorder.
        executor: Sync executor.
        refresher: OAuth credential refresher.
        settings: Application settings (CRM, OAuth and retry configuration).
        client_factory: Builds a CRM client from a bearer token. Defaults to
            build_crm_client bound to the configured base URL and version.
        sleep: Awaitable sleep used between retries.
    """

    def __init__(
        self,
        wizards: WizardRepository,
        connections: ConnectionRepository,
        recorder: RunRecorder,
        executor: SyncExecutor,
        refresher: CredentialRefresher,
        settings: Settings,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._wizards = wizards
        self._connections = connections
        self._recorder = recorder
        self._executor = executor
        self._refresher = refresher
        self._settings = settings
        self._client_factory = client_factory or partial(
            build_crm_client,
            base_url=settings.CRM_BASE_URL,
            api_version=settings.CRM_API_VERSION,
            timeout=settings.CRM_HTTP_TIMEOUT,
        )
        self._sleep = sleep

    async def run_sync(self, wizard_id: str) -> SyncDiff:
        """Synchronise one wizard into the CRM.

        Returns:
            The diff persisted on the successful run.

        Raises:
            WizardNotFoundError: No wizard with this id.
            ConnectionNotFoundError: No saved connection for its location.
            MissingAccessTokenError: The stored credential has no token.
            RunStartError: The run row could not be inserted.
            httpx.HTTPError: CRM failure after all retry attempts.
        """
        wizard = await self._wizards.get_wizard(wizard_id)
        if wizard is None:
            raise WizardNotFoundError(wizard_id)

        log = logger.bind(wizard_id=wizard_id, location_id=wizard.location_id)

        resolution = await self.resolve_token(wizard.org_user_id, wizard.location_id)
        client = self._client_factory(resolution.access_token)

        async with client:
            payload = build_payload(wizard)
            run_id = await self._recorder.start(wizard_id)
            started = time.perf_counter()

            log.info(
                "sync.payload_built",
                run_id=run_id,
                custom_fields=len(payload.custom_fields),
                custom_values=len(payload.custom_values),
                trigger_links=len(payload.trigger_links),
                tags=len(payload.tags),
                media=len(payload.media),
            )

            try:
                diff = await run_with_backoff(
                    partial(self._attempt, client, payload, wizard_id),
                    max_attempts=self._settings.SYNC_MAX_ATTEMPTS,
                    base_delay=self._settings.SYNC_BASE_DELAY_SECONDS,
                    sleep=self._sleep,
                )
            except Exception as exc:
                wizard_sync_run_duration_seconds.observe(time.perf_counter() - started)
                wizard_sync_runs_total.labels(status="failed").inc()
                await self._recorder.finish_failure(run_id, wizard_id, str(exc) or type(exc).__name__)
                raise

            wizard_sync_run_duration_seconds.observe(time.perf_counter() - started)
            wizard_sync_runs_total.labels(status="success").inc()
            await self._recorder.finish_success(run_id, wizard_id, diff)

        return diff

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        payload: SyncOperationPayload,
        wizard_id: str,
        attempt: int,
    ) -> SyncDiff:
        if attempt:
            logger.info("sync.attempt_retry", wizard_id=wizard_id, attempt=attempt)
        return await self._executor.execute(client, payload)

    # ── Token Resolution ────────────────────────────────────────────────────

    async def resolve_token(self, org_user_id: str, location_id: str) -> TokenResolution:
        """Return a usable bearer token for a saved connection.

        An OAuth credential with a refresh token is refreshed when its access
        token is missing or expires within the configured buffer. Refresh is
        fail-open: on failure the stored token is returned and the outcome is
        reported in ``refresh_status``.

        Raises:
            ConnectionNotFoundError: No saved connection exists.
        """
        raw = await self._connections.get_token(org_user_id, location_id)
        if raw is None:
            raise ConnectionNotFoundError(org_user_id, location_id)

        credential = decode_credential(raw)
        status = RefreshStatus.NOT_NEEDED
        refresh_error: str | None = None

        needs_refresh = (
            isinstance(credential, OAuthCredential)
            and bool(credential.refresh_token)
            and (
                not credential.access_token
                or is_access_token_expired(
                    credential, self._settings.TOKEN_REFRESH_BUFFER_SECONDS
                )
            )
        )

        if needs_refresh and not self._settings.oauth_refresh_configured:
            status = RefreshStatus.SKIPPED_UNCONFIGURED
            logger.warning("credentials.refresh_skipped_unconfigured", location_id=location_id)
        elif needs_refresh:
            try:
                credential = await self._refresher.refresh(
                    credential,
                    client_id=self._settings.GHL_OAUTH_CLIENT_ID,
                    client_secret=self._settings.GHL_OAUTH_CLIENT_SECRET,
                    token_url=self._settings.GHL_OAUTH_TOKEN_URL,
                )
            except Exception as exc:
                status = RefreshStatus.FAILED
                refresh_error = str(exc) or type(exc).__name__
                logger.error(
                    "credentials.refresh_failed",
                    location_id=location_id,
                    error=refresh_error,
                )
            else:
                status = RefreshStatus.REFRESHED
                await self._persist_credential(org_user_id, location_id, credential)

        if needs_refresh:
            credential_refresh_total.labels(outcome=status.value).inc()

        return TokenResolution(
            access_token=current_access_token(credential),
            credential_type=CredentialType(credential.type),
            refresh_status=status,
            refresh_error=refresh_error,
        )

    async def _persist_credential(
        self, org_user_id: str, location_id: str, credential: OAuthCredential
    ) -> None:
        encoded = encode_credential(credential)
        if not encoded:
            return
        try:
            await self._connections.update_token(org_user_id, location_id, encoded)
        except Exception as exc:
            # The refreshed token is still used for this run
            logger.error(
                "credentials.refresh_persist_failed",
                location_id=location_id,
                error=str(exc),
            )

"""Deployment service with state machine enforcement.

Turns a stored upload into a browsable static site in the public
deployments bucket and records the outcome on the prototype row.

State machine:
    pending -> processing -> deployed
                          \\-> failed
    pending -> failed          (record has no source file)
    processing -> processing   (stale claim taken over)

The claim is a compare-and-swap on the row, so only one invocation per
prototype ever does the work; a duplicate trigger gets
DeploymentConflictError and leaves the record alone. The claim stamps
``claimed_at``. A claim older than ``claim_timeout`` seconds belongs to an
invocation that died without cleaning up, and may be taken over. Final
writes are conditional on the stamp, so a superseded invocation can no
longer touch the record.

Pipeline (inside one invocation):
  1. Load the record; claim it
  2. Download the source file from the private uploads bucket
  3. `.zip`  → extract into a scratch directory, publish every file
     other  → publish the bytes as `{id}/index.html` (text/html)
  4. Resolve the public URL of `{id}/index.html`
  5. Persist `deployed` + URL in one UPDATE

Any failure after the claim persists `failed` before the error is raised,
cancellation included.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import bind_prototype_id
from app.db.models import Prototype
from app.storage.client import PrototypeStorage
from runner.deploy import PublishedFile, extract_zip, publish_tree, scratch_directory
from runner.errors import (
    DeploymentConflictError,
    DownloadError,
    ExtractionError,
    NoSourceFileError,
    PipelineError,
    PublishResolutionError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)

ENTRY_POINT = "index.html"

DEFAULT_CLAIM_TIMEOUT = 900

# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"processing", "failed"},
    "processing": {"processing", "deployed", "failed"},
}


def validate_transition(current: str, target: str) -> None:
    """Enforce the deployment state machine.

    Raises ValueError if the transition is not allowed.
    """
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise ValueError(
            f"Invalid deployment state transition: {current} -> {target}. "
            f"Allowed transitions from '{current}': {allowed or 'none (terminal state)'}"
        )


def is_zip_source(file_path: str) -> bool:
    return file_path.lower().endswith(".zip")


@dataclass
class DeploymentResult:
    prototype_id: uuid.UUID
    deployment_url: str
    published: list[PublishedFile] = field(default_factory=list)


# ---------------------------------------------------------------------------
# DeploymentService
# ---------------------------------------------------------------------------


class DeploymentService:
    """Runs one deployment against a prototype record.

    The session is committed after every status change so the status is
    durable before an error reaches the caller.
    """

    def __init__(
        self,
        db: AsyncSession,
        storage: PrototypeStorage,
        publish_concurrency: int = 8,
        claim_timeout: int = DEFAULT_CLAIM_TIMEOUT,
    ) -> None:
        self.db = db
        self.storage = storage
        self.publish_concurrency = publish_concurrency
        self.claim_timeout = claim_timeout

    async def deploy(self, prototype_id: uuid.UUID) -> DeploymentResult:
        """Deploy a pending prototype and return its public URL.

        Raises:
            RecordNotFoundError: No prototype with this id.
            NoSourceFileError: The record has no source file (marked failed).
            DeploymentConflictError: The record is not pending, or another
                invocation holds a live claim on it.
            DownloadError, ExtractionError, PublishResolutionError:
                Pipeline failures (marked failed).
        """
        with bind_prototype_id(str(prototype_id)):
            logger.info("Processing prototype %s", prototype_id)
            prototype = await self.db.get(Prototype, prototype_id, populate_existing=True)
            if prototype is None:
                logger.error("Prototype %s not found", prototype_id)
                raise RecordNotFoundError(
                    "Prototype not found", details={"prototypeId": str(prototype_id)}
                )

            file_path = prototype.file_path
            if not file_path:
                logger.error("Prototype %s has no file path", prototype_id)
                await self._set_status(prototype_id, "pending", "failed")
                raise NoSourceFileError("No file to process")

            claimed_at = await self._claim(prototype_id, prototype.deployment_status)

            try:
                result = await self._run(prototype_id, file_path)
                deployed = await self._set_status(
                    prototype_id,
                    "processing",
                    "deployed",
                    result.deployment_url,
                    claimed_at=claimed_at,
                )
                if not deployed:
                    raise PublishResolutionError(
                        "Deployment record changed while publishing",
                        details={"deploymentUrl": result.deployment_url},
                    )
            except PipelineError as exc:
                logger.error("Deployment of %s failed: %s", prototype_id, exc.message)
                await self._mark_failed(prototype_id, claimed_at)
                raise
            except asyncio.CancelledError:
                logger.error("Deployment of %s was cancelled", prototype_id)
                await asyncio.shield(self._mark_failed(prototype_id, claimed_at))
                raise
            except Exception as exc:
                logger.exception("Unexpected error deploying %s", prototype_id)
                await self._mark_failed(prototype_id, claimed_at)
                raise PipelineError("Unexpected deployment failure", details=str(exc)) from exc

            logger.info(
                "Prototype %s deployed (%d files) at %s",
                prototype_id, len(result.published), result.deployment_url,
            )
            return result

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    async def _run(self, prototype_id: uuid.UUID, file_path: str) -> DeploymentResult:
        await self._ensure_buckets()
        data = await self._download(file_path)

        if is_zip_source(file_path):
            published = await self._publish_archive(prototype_id, data)
        else:
            published = await self._publish_single_file(prototype_id, data)

        entry_path = f"{prototype_id}/{ENTRY_POINT}"
        if entry_path not in {f.storage_path for f in published}:
            raise PublishResolutionError(
                "No index.html at the root of the uploaded archive",
                details={"published": [f.storage_path for f in published]},
            )

        url = self._resolve_url(entry_path)
        return DeploymentResult(prototype_id, url, published)

    async def _ensure_buckets(self) -> None:
        # Missing buckets surface again, as a download or publish error.
        try:
            await self.storage.ensure_buckets()
        except Exception as exc:
            logger.warning("Could not check or create storage buckets: %s", exc)

    async def _download(self, file_path: str) -> bytes:
        logger.info("Downloading source file %s", file_path)
        try:
            data = await self.storage.download_upload(file_path)
        except Exception as exc:
            raise DownloadError("Failed to download file", details=str(exc)) from exc
        if not data:
            raise DownloadError("Failed to download file", details="empty file")
        logger.info("Downloaded %d bytes", len(data))
        return data

    async def _publish_archive(
        self, prototype_id: uuid.UUID, data: bytes
    ) -> list[PublishedFile]:
        with scratch_directory() as scratch:
            await asyncio.to_thread(extract_zip, data, scratch)
            return await publish_tree(
                scratch,
                str(prototype_id),
                self.storage.publish,
                concurrency=self.publish_concurrency,
            )

    async def _publish_single_file(
        self, prototype_id: uuid.UUID, data: bytes
    ) -> list[PublishedFile]:
        # Any non-ZIP upload is served as the site's index page.
        storage_path = f"{prototype_id}/{ENTRY_POINT}"
        try:
            await self.storage.publish(storage_path, data, "text/html")
        except Exception as exc:
            raise ExtractionError("Failed to upload HTML file", details=str(exc)) from exc
        return [PublishedFile(storage_path, "text/html", len(data))]

    def _resolve_url(self, entry_path: str) -> str:
        try:
            url: Optional[str] = self.storage.public_url(entry_path)
        except Exception as exc:
            raise PublishResolutionError("Failed to get public URL", details=str(exc)) from exc
        if not url:
            raise PublishResolutionError("Failed to get public URL")
        return url

    # ------------------------------------------------------------------
    # Status bookkeeping
    # ------------------------------------------------------------------

    async def _claim(self, prototype_id: uuid.UUID, observed_status: str) -> datetime:
        """Take ownership of the record and return the claim stamp.

        A pending record is always claimable; a processing one only once its
        claim has gone stale. A processing record without a stamp is never
        taken over.
        """
        now = datetime.now(timezone.utc)
        stale_before = now - timedelta(seconds=self.claim_timeout)
        claimable = or_(
            Prototype.deployment_status == "pending",
            and_(
                Prototype.deployment_status == "processing",
                Prototype.claimed_at < stale_before,
            ),
        )
        result = await self.db.execute(
            update(Prototype)
            .where(Prototype.id == prototype_id, claimable)
            .values(deployment_status="processing", claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount != 1:
            logger.warning(
                "Prototype %s is %s, not pending; refusing to deploy",
                prototype_id, observed_status,
            )
            raise DeploymentConflictError(
                f"Prototype deployment is already {observed_status}",
                details={"status": observed_status},
            )
        if observed_status == "processing":
            logger.warning("Prototype %s: took over a stale claim", prototype_id)
        else:
            logger.info("Prototype %s: pending -> processing", prototype_id)
        return now

    async def _mark_failed(self, prototype_id: uuid.UUID, claimed_at: datetime) -> None:
        await self.db.rollback()
        if not await self._set_status(
            prototype_id, "processing", "failed", claimed_at=claimed_at
        ):
            logger.error("Failed to update prototype %s with failed status", prototype_id)

    async def _set_status(
        self,
        prototype_id: uuid.UUID,
        current: str,
        target: str,
        deployment_url: Optional[str] = None,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        """Move the record from ``current`` to ``target`` if it is still ``current``.

        With ``claimed_at``, the record must also still carry that claim.
        Status and URL are written in the same statement. Returns whether a
        row was updated.
        """
        validate_transition(current, target)
        values: dict = {"deployment_status": target}
        if target == "deployed":
            values["deployment_url"] = deployment_url
        conditions = [Prototype.id == prototype_id, Prototype.deployment_status == current]
        if claimed_at is not None:
            conditions.append(Prototype.claimed_at == claimed_at)
        result = await self.db.execute(
            update(Prototype)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        updated = result.rowcount == 1
        if updated:
            logger.info("Prototype %s: %s -> %s", prototype_id, current, target)
        return updated

"""Prototype endpoints.

Upload flow as seen by the web client:
  1. POST /prototypes           — store the file, create a `pending` record
  2. POST /process-prototype    — deploy it (single-flight per prototype)
  3. GET  /prototypes/{id}/deployment — poll until `deployed` or `failed`

POST /prototypes/inspect classifies an archive for the inline preview
without storing anything. POST /prototypes/inspected does the same and
saves the result: the classified files for the inline preview, and the
archive itself so the prototype can be deployed later.

When a Figma link is given, the file name and preview image are looked up
once and stored with the prototype. The lookup is best-effort.

Rate limiting: POST /process-prototype is throttled via SlowAPI.
"""

import asyncio
import logging
import uuid
from pathlib import PurePosixPath
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.core.config import Settings, get_settings
from app.core.limiter import limiter
from app.db.models import Prototype
from app.db.session import get_db
from app.figma.client import FigmaAPIError, get_file
from app.figma.links import extract_figma_key
from app.prototypes.schemas import (
    DeploymentStatusResponse,
    InspectResponse,
    ProcessPrototypeRequest,
    ProcessPrototypeResponse,
    PrototypeLinkRequest,
    PrototypeResponse,
)
from app.prototypes.service import DeploymentService
from app.storage.client import PrototypeStorage, get_storage
from runner.archive import ClassifiedProject
from runner.deploy import content_type_for
from runner.inspector import guard_dom_scripts, inject_stylesheet, inspect

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(tags=["prototypes"])

UPLOAD_EXTENSIONS = {"zip", "html", "htm"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _store_upload(storage: PrototypeStorage, file_path: str, data: bytes) -> None:
    try:
        await storage.store_upload(file_path, data, content_type_for(file_path))
    except Exception as exc:
        logger.error("Upload of %s failed: %s", file_path, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Upload failed: {exc}",
        ) from exc


async def _figma_fields(figma_link: Optional[str], settings: Settings) -> dict[str, Any]:
    """Prototype columns derived from a Figma share link."""
    if not figma_link:
        return {}
    fields: dict[str, Any] = {
        "figma_link": figma_link,
        "figma_file_key": extract_figma_key(figma_link),
    }
    if not fields["figma_file_key"] or not settings.figma_access_token:
        return fields

    try:
        figma_file = await get_file(
            settings.figma_access_token, fields["figma_file_key"], settings.figma_api_base
        )
    except (FigmaAPIError, httpx.HTTPError) as exc:
        logger.warning("Figma lookup for %s failed: %s", fields["figma_file_key"], exc)
        return fields

    fields["figma_file_name"] = figma_file.name or None
    fields["figma_preview_url"] = figma_file.preview_url
    return fields


def _preview_files(project: ClassifiedProject) -> dict[str, str]:
    """Files as the inline preview renders them.

    Vanilla projects get their DOM scripts guarded, and the hosted Tailwind
    stylesheet when Tailwind markers were found.
    """
    files = project.files
    if project.tech_stack == "vanilla":
        if project.has_tailwind:
            files = inject_stylesheet(files)
        files = guard_dom_scripts(files)
    return files


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/process-prototype", response_model=ProcessPrototypeResponse)
@limiter.limit(settings.process_rate_limit)
async def process_prototype(
    request: Request,
    body: ProcessPrototypeRequest,
    db: AsyncSession = Depends(get_db),
    storage: PrototypeStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
) -> ProcessPrototypeResponse:
    """Deploy an uploaded prototype to the public deployments bucket."""
    service = DeploymentService(
        db,
        storage,
        publish_concurrency=app_settings.publish_concurrency,
        claim_timeout=app_settings.deployment_claim_timeout,
    )
    result = await service.deploy(body.prototype_id)
    return ProcessPrototypeResponse(success=True, deployment_url=result.deployment_url)


@router.post(
    "/prototypes",
    response_model=PrototypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_prototype(
    file: UploadFile = File(...),
    name: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    figma_link: Optional[str] = Form(default=None, alias="figmaLink"),
    db: AsyncSession = Depends(get_db),
    storage: PrototypeStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> PrototypeResponse:
    """Store an uploaded ZIP or HTML file and create a pending prototype."""
    filename = PurePosixPath(file.filename or "")
    extension = filename.suffix.lstrip(".").lower()
    if extension not in UPLOAD_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload a .zip archive or an .html file",
        )

    data = await file.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is empty",
        )

    prototype_id = uuid.uuid4()
    file_path = f"{user_id}/{prototype_id}.{extension}"
    await _store_upload(storage, file_path, data)

    prototype = Prototype(
        id=prototype_id,
        name=name or filename.stem,
        description=description or None,
        created_by=user_id,
        tech_stack="zip-package" if extension == "zip" else "html",
        files={},
        file_path=file_path,
        deployment_status="pending",
        **await _figma_fields(figma_link, app_settings),
    )
    db.add(prototype)
    await db.commit()
    await db.refresh(prototype)

    logger.info("Created prototype %s from %s (%d bytes)", prototype_id, file_path, len(data))
    return PrototypeResponse.model_validate(prototype)


@router.post(
    "/prototypes/link",
    response_model=PrototypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_link_prototype(
    body: PrototypeLinkRequest,
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> PrototypeResponse:
    """Register an externally hosted prototype; nothing needs deploying."""
    prototype = Prototype(
        name=body.name,
        description=body.description,
        created_by=user_id,
        tech_stack="external-url",
        files={},
        preview_url=body.preview_url,
        deployment_status="deployed",
        deployment_url=body.preview_url,
        **await _figma_fields(body.figma_link, app_settings),
    )
    db.add(prototype)
    await db.commit()
    await db.refresh(prototype)

    logger.info("Created external prototype %s -> %s", prototype.id, body.preview_url)
    return PrototypeResponse.model_validate(prototype)


@router.post("/prototypes/inspect", response_model=InspectResponse)
async def inspect_prototype(file: UploadFile = File(...)) -> InspectResponse:
    """Classify an archive for the inline preview."""
    data = await file.read()
    project = await asyncio.to_thread(inspect, data)

    return InspectResponse(
        tech_stack=project.tech_stack,
        files=_preview_files(project),
        has_tailwind=project.has_tailwind,
        binary_paths=project.binary_paths,
        warnings=project.warnings,
    )


@router.post(
    "/prototypes/inspected",
    response_model=PrototypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_inspected_prototype(
    file: UploadFile = File(...),
    name: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    figma_link: Optional[str] = Form(default=None, alias="figmaLink"),
    db: AsyncSession = Depends(get_db),
    storage: PrototypeStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
    user_id: uuid.UUID = Depends(get_current_user),
) -> PrototypeResponse:
    """Inspect an archive and save it as a pending prototype.

    The record carries the detected stack (``react`` / ``vanilla``) and the
    preview files; the archive goes to the uploads bucket like any upload.
    Nothing is stored when inspection fails.
    """
    data = await file.read()
    project = await asyncio.to_thread(inspect, data)

    prototype_id = uuid.uuid4()
    file_path = f"{user_id}/{prototype_id}.zip"
    await _store_upload(storage, file_path, data)

    prototype = Prototype(
        id=prototype_id,
        name=name or PurePosixPath(file.filename or "prototype").stem,
        description=description or None,
        created_by=user_id,
        tech_stack=project.tech_stack,
        files=_preview_files(project),
        file_path=file_path,
        deployment_status="pending",
        **await _figma_fields(figma_link, app_settings),
    )
    db.add(prototype)
    await db.commit()
    await db.refresh(prototype)

    logger.info(
        "Created %s prototype %s with %d preview files",
        project.tech_stack, prototype_id, len(prototype.files),
    )
    return PrototypeResponse.model_validate(prototype)


@router.get(
    "/prototypes/{prototype_id}/deployment",
    response_model=DeploymentStatusResponse,
)
async def get_deployment_status(
    prototype_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user),
) -> DeploymentStatusResponse:
    """Return the deployment status of one of the caller's prototypes."""
    result = await db.execute(
        select(Prototype).where(
            Prototype.id == prototype_id,
            Prototype.created_by == user_id,
        )
    )
    prototype = result.scalar_one_or_none()
    if not prototype:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Prototype not found",
        )

    return DeploymentStatusResponse(
        prototype_id=prototype.id,
        status=prototype.deployment_status,
        deployment_url=prototype.deployment_url,
    )

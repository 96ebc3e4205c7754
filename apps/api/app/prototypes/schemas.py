"""Pydantic schemas for prototype endpoints.

Field names are camelCase on the wire to match the web client.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessPrototypeRequest(CamelModel):
    """Trigger payload for deploying an uploaded prototype."""

    prototype_id: uuid.UUID


class ProcessPrototypeResponse(CamelModel):
    success: bool = True
    deployment_url: str


class DeploymentStatusResponse(CamelModel):
    """Polled by the web client while a deployment is pending."""

    prototype_id: uuid.UUID
    status: str
    deployment_url: Optional[str] = None


class PrototypeLinkRequest(CamelModel):
    """An externally hosted prototype; it is deployed as soon as it is created."""

    name: str = Field(..., min_length=1)
    preview_url: str = Field(..., pattern=r"^https?://")
    description: Optional[str] = None
    figma_link: Optional[str] = None


class PrototypeResponse(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: uuid.UUID
    name: str
    description: Optional[str]
    created_by: uuid.UUID
    tech_stack: str
    files: dict[str, Any]
    file_path: Optional[str]
    preview_url: Optional[str]
    deployment_status: str
    deployment_url: Optional[str]
    figma_link: Optional[str]
    figma_file_key: Optional[str]
    figma_file_name: Optional[str]
    figma_preview_url: Optional[str]
    created_at: datetime


class InspectResponse(CamelModel):
    """Inline-preview view of an inspected archive."""

    tech_stack: str
    files: dict[str, str]
    has_tailwind: bool
    binary_paths: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

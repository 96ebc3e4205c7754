"""Pydantic schemas for the Figma lookup endpoint."""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FigmaFileRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    file_key: Optional[str] = None


class FigmaFileResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    preview_url: Optional[str] = None
    last_modified: Optional[str] = None

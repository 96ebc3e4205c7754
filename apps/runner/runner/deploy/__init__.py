"""Deployment Extractor building blocks.

Public API:
    scratch_directory(prefix) -> context manager yielding a temp Path
    extract_zip(data, dest)
    walk_files(root) -> list[str]
    publish_tree(root, prefix, upload, concurrency) -> list[PublishedFile]
    content_type_for(filename) -> str
"""

from runner.deploy.content_types import content_type_for
from runner.deploy.publisher import PublishedFile, publish_tree, walk_files
from runner.deploy.workspace import extract_zip, scratch_directory

__all__ = [
    "PublishedFile",
    "content_type_for",
    "extract_zip",
    "publish_tree",
    "scratch_directory",
    "walk_files",
]

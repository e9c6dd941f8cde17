"""Work metadata loading and cascading resolution."""

from .resolver import MetadataResolver, cascade, content_paths, content_root
from .store import MetadataStore, ProjectSettings

__all__ = [
    "MetadataResolver",
    "MetadataStore",
    "ProjectSettings",
    "cascade",
    "content_paths",
    "content_root",
]

from workreplica.metadata.manager import (
    MetadataManager,
    MetadataMap,
    StateMetadata,
    TypeMetadata,
)

__all__ = ["MetadataManager", "MetadataMap", "StateMetadata", "TypeMetadata"]

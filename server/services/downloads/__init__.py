"""Signed download links and on-demand archive delivery.

- Stateless HS256 tokens carrying the selected item ids
- Content-addressed zip cache on local disk with atomic installs
- Single-flight builds per cache key with a global concurrency cap
- Partial archives when some items cannot be fetched
"""

from .exceptions import (
    DownloadError,
    InvalidInput,
    TokenInvalid,
    TokenExpired,
    TooManyConcurrentBuilds,
    NoContent,
    DeliveryError,
)
from .tokens import (
    DownloadClaims,
    DownloadTokenCodec,
    cache_key_for,
    normalize_item_ids,
)
from .store import (
    ArchiveCacheStore,
    CacheLookup,
    CacheStatus,
)
from .coordinator import BuildCoordinator
from .builder import (
    ArchiveBuilder,
    BuildReport,
    MetadataStore,
    ObjectStore,
    sanitize_filename,
    unique_entry_name,
)
from .service import (
    ArchiveDownload,
    DownloadService,
    IssuedLink,
)

__all__ = [
    # Exceptions
    'DownloadError',
    'InvalidInput',
    'TokenInvalid',
    'TokenExpired',
    'TooManyConcurrentBuilds',
    'NoContent',
    'DeliveryError',
    # Tokens
    'DownloadClaims',
    'DownloadTokenCodec',
    'cache_key_for',
    'normalize_item_ids',
    # Cache
    'ArchiveCacheStore',
    'CacheLookup',
    'CacheStatus',
    # Builds
    'BuildCoordinator',
    'ArchiveBuilder',
    'BuildReport',
    'MetadataStore',
    'ObjectStore',
    'sanitize_filename',
    'unique_entry_name',
    # Orchestration
    'ArchiveDownload',
    'DownloadService',
    'IssuedLink',
]

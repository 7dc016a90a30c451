"""Centralized constants for uploads and download archives.

Single source of truth for strings shared between the models, services and
routers.
"""

from typing import FrozenSet

# =============================================================================
# UPLOADS
# =============================================================================

UPLOAD_FILE_TYPES: FrozenSet[str] = frozenset([
    'photo',
    'video',
])

DEFAULT_FILE_TYPE = 'photo'

# =============================================================================
# DOWNLOAD TOKENS
# =============================================================================

TOKEN_ALGORITHM = 'HS256'
SECONDS_PER_DAY = 24 * 60 * 60

# =============================================================================
# ARCHIVES
# =============================================================================

ARCHIVE_MEDIA_TYPE = 'application/zip'

# Suggested client back-off when build capacity is exhausted
BUILD_RETRY_AFTER_SECONDS = 30

# Read/write chunk size for object fetches and archive streaming
STREAM_CHUNK_SIZE = 64 * 1024


def is_valid_file_type(file_type: str) -> bool:
    """Check if an upload file type is one the gallery knows how to show."""
    return file_type in UPLOAD_FILE_TYPES

"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.cleanup import ArchiveJanitor
from core.config import Settings
from core.database import Database
from services.downloads import (
    ArchiveBuilder,
    ArchiveCacheStore,
    BuildCoordinator,
    DownloadService,
    DownloadTokenCodec,
)
from services.mailer import create_mailer
from services.object_store import S3ObjectStore


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Upload metadata
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Object storage (S3 / Spaces)
    object_store = providers.Singleton(
        S3ObjectStore,
        settings=settings
    )

    # Outbound mail (Resend, SMTP, or null)
    mailer = providers.Singleton(
        create_mailer,
        settings=settings
    )

    # Download subsystem
    token_codec = providers.Singleton(
        DownloadTokenCodec,
        secret=settings.provided.download_token_secret,
        validity_seconds=settings.provided.download_link_validity_seconds,
        max_items=settings.provided.max_photo_selection
    )

    archive_store = providers.Singleton(
        ArchiveCacheStore,
        cache_dir=settings.provided.archive_cache_dir,
        retention_seconds=settings.provided.archive_retention_seconds
    )

    build_coordinator = providers.Singleton(
        BuildCoordinator,
        max_concurrent_builds=settings.provided.max_concurrent_builds
    )

    archive_builder = providers.Singleton(
        ArchiveBuilder,
        metadata=database,
        object_store=object_store,
        compression_level=settings.provided.archive_compression_level,
        item_timeout=settings.provided.item_fetch_timeout
    )

    download_service = providers.Singleton(
        DownloadService,
        codec=token_codec,
        store=archive_store,
        coordinator=build_coordinator,
        builder=archive_builder,
        mailer=mailer,
        public_base_url=settings.provided.public_base_url,
        archive_name_prefix=settings.provided.archive_name_prefix
    )

    janitor = providers.Singleton(
        ArchiveJanitor,
        store=archive_store,
        settings=settings
    )


# Global container instance
container = Container()

"""
FastAPI dependencies.

Shared composer and job store instances for the render routes.
"""

from functools import lru_cache

from modules.composer import ComposerConfig, SlideshowComposer
from shared.config import settings
from shared.database import DatabaseClient
from shared.logging import get_logger

from api_gateway.services.job_store import JobStore

logger = get_logger(__name__)


@lru_cache()
def get_composer() -> SlideshowComposer:
    """One composer per process; renders share it but never share a session."""
    config = ComposerConfig.from_settings(settings)
    logger.info(
        "Composer configured",
        extra={
            "work_root": str(config.work_root),
            "encode_preset": config.encode_preset,
            "duration_policy": config.duration_policy
        }
    )
    return SlideshowComposer(config)


@lru_cache()
def get_job_store() -> JobStore:
    """
    Job store backed by the videos table.

    Raises:
        ConfigurationError: If Supabase credentials are missing
    """
    db_client = DatabaseClient(settings.supabase_url, settings.supabase_service_key)
    return JobStore(db_client, table=settings.videos_table)

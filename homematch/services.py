# homematch/services.py
from typing import List, Optional

from . import config
from .db import get_client
from .errors import ServiceUnavailableError
from .schemas import IngestSummary
from .utils import logger
from .zillow import ingest_zillow_locations


def run_zillow_ingest(locations: Optional[List[str]] = None, max_pages: Optional[int] = None,
                      fetch_images: Optional[bool] = None, client=None) -> IngestSummary:
    """Run one ingestion pass over ``locations`` (default ``INGEST_LOCATIONS``).

    ``fetch_images`` falls back to ``INGEST_FETCH_IMAGES`` when not given.
    """
    if not config.RAPIDAPI_KEY:
        raise ServiceUnavailableError("RAPIDAPI_KEY not set")
    locations = locations or config.INGEST_LOCATIONS
    if not locations:
        raise ValueError("No ingestion locations configured")
    if fetch_images is None:
        fetch_images = config.INGEST_FETCH_IMAGES

    summary = ingest_zillow_locations(
        locations,
        api_key=config.RAPIDAPI_KEY,
        client=client or get_client(),
        host=config.RAPIDAPI_HOST,
        page_size=config.INGEST_PAGE_SIZE,
        max_pages=max_pages or config.INGEST_MAX_PAGES,
        delay_ms=config.INGEST_DELAY_MS,
        fetch_images=fetch_images,
        images_host=config.ZILLOW_IMAGES_HOST,
    )
    t = summary.totals
    logger.info("Zillow ingest finished: %d attempted, %d upserted, %d skipped across %d locations",
                t.attempted, t.inserted_or_updated, t.skipped, len(summary.locations))
    return summary

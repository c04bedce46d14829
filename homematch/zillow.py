# homematch/zillow.py
"""Zillow (RapidAPI) ingestion.

Two upstream calls: the paginated ``propertyExtendedSearch`` listing search
and the per-property ``images`` lookup. Listings are normalized, validated
and upserted keyed by ``zpid``; one location failing never stops the next.
"""
import random
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

import requests
from pydantic import ValidationError

from . import crud
from .errors import PostgrestError, ZillowAPIError, ZillowRateLimitError
from .postgrest import PostgrestClient
from .schemas import IngestLocationSummary, IngestSummary, PropertyUpsert
from .utils import RetryPolicy, call_with_retry, logger

DEFAULT_HOST = "zillow-com1.p.rapidapi.com"
DEFAULT_IMAGES_HOST = "us-housing-market-data1.p.rapidapi.com"
DEFAULT_PAGE_SIZE = 20
DEFAULT_MAX_PAGES = 2
DEFAULT_DELAY_MS = 1250
# consecutive 429s tolerated on one search page before the location is given up
MAX_PAGE_RATE_LIMIT_RETRIES = 3
# added to the backoff when the previous attempt timed out
TIMEOUT_PENALTY_SECONDS = 1.0

# search pages retry dropped connections only; 1s then 2s
SEARCH_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    backoff=lambda attempt, _e: 1.0 * (2 ** attempt),
    retryable=lambda e: isinstance(e, requests.ConnectionError),
)

SEARCH_SORTS = ("Newest", "Price_High_Low", "Price_Low_High", "Beds", "Baths", "Square_Feet")

PROPERTY_TYPES = {
    "SINGLE_FAMILY": "single_family",
    "CONDO": "condo",
    "TOWNHOUSE": "townhome",
    "APARTMENT": "multi_family",
    "MULTI_FAMILY": "multi_family",
    "MANUFACTURED": "manufactured",
    "LOT": "land",
}

Sleep = Callable[[float], None]


def rapidapi_headers(api_key: str, host: str) -> Dict[str, str]:
    return {
        "X-RapidAPI-Key": api_key,
        "X-RapidAPI-Host": host,
        "Accept": "application/json",
    }


# -- images

def image_backoff(attempt: int, error: BaseException) -> float:
    delay = 0.5 * (2 ** attempt) + random.uniform(0, 0.25)
    if isinstance(error, requests.Timeout):
        delay += TIMEOUT_PENALTY_SECONDS
    return delay


def _retryable_image_error(error: BaseException) -> bool:
    return isinstance(error, (ZillowRateLimitError, requests.RequestException))


def parse_image_urls(payload: Any, max_images: int = 80) -> List[str]:
    """String entries of ``payload["images"]``, deduped in order, capped at ``max_images``."""
    images = payload.get("images") if isinstance(payload, dict) else None
    if not isinstance(images, list):
        return []
    urls = [u for u in images if isinstance(u, str)]
    return list(dict.fromkeys(urls))[:max(0, max_images)]


def fetch_zillow_image_urls(zpid: Any, api_key: str, host: str = DEFAULT_IMAGES_HOST,
                            retries: int = 3, timeout_ms: int = 30000, max_images: int = 80,
                            session: Optional[requests.Session] = None,
                            sleep: Sleep = time.sleep) -> List[str]:
    """Photo URLs for one property.

    A 404 means the property has no photos and returns ``[]``. 429s and
    network errors/timeouts are retried with exponential backoff, sharing
    one budget of ``retries`` attempts. Any other error status is raised
    straight away as ``ZillowAPIError``.
    """
    http = session or requests
    url = f"https://{host}/images?{urlencode({'zpid': str(zpid)})}"

    def attempt() -> List[str]:
        res = http.get(url, headers=rapidapi_headers(api_key, host), timeout=timeout_ms / 1000)
        if res.status_code == 404:
            return []
        if res.status_code == 429:
            raise ZillowRateLimitError(f"Rate limited fetching images for zpid {zpid}", text=res.text)
        if not res.ok:
            raise ZillowAPIError(f"Zillow images HTTP {res.status_code} for zpid {zpid}",
                                 status=res.status_code, text=res.text[:200])
        try:
            payload = res.json()
        except ValueError as e:
            raise ZillowAPIError(f"Invalid JSON from images endpoint for zpid {zpid}",
                                 status=res.status_code) from e
        return parse_image_urls(payload, max_images)

    policy = RetryPolicy(max_attempts=retries, backoff=image_backoff, retryable=_retryable_image_error)
    return call_with_retry(attempt, policy, sleep=sleep)


# -- listing search

def build_search_url(location: str, page: int, page_size: int = DEFAULT_PAGE_SIZE,
                     host: str = DEFAULT_HOST, sort: Optional[str] = None,
                     price_min: Optional[int] = None, price_max: Optional[int] = None) -> str:
    params = {
        "location": location,
        "status_type": "ForSale",
        "page": str(page),
        "pageSize": str(page_size),
    }
    if sort:
        if sort not in SEARCH_SORTS:
            raise ValueError(f"Unsupported sort {sort!r}; expected one of {', '.join(SEARCH_SORTS)}")
        params["sort"] = sort
    if price_min is not None:
        params["minPrice"] = str(int(price_min))
    if price_max is not None:
        params["maxPrice"] = str(int(price_max))
    return f"https://{host}/propertyExtendedSearch?{urlencode(params)}"


def extract_results(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    for candidate in (data.get("props"), data.get("results"), (data.get("data") or {}).get("results")):
        if isinstance(candidate, list):
            return candidate
    return []


def has_another_page(data: Dict[str, Any], page: int, page_size: int, returned: int) -> bool:
    if isinstance(data.get("hasNextPage"), bool):
        return data["hasNextPage"]
    total_pages = data.get("totalPages") or (data.get("pagination") or {}).get("totalPages")
    if not total_pages and data.get("totalCount"):
        total_pages = -(-int(data["totalCount"]) // page_size)
    if total_pages:
        return page < int(total_pages)
    return returned >= page_size


def fetch_zillow_search_page(location: str, page: int, api_key: str,
                             page_size: int = DEFAULT_PAGE_SIZE, host: str = DEFAULT_HOST,
                             sort: Optional[str] = None, price_min: Optional[int] = None,
                             price_max: Optional[int] = None,
                             session: Optional[requests.Session] = None,
                             timeout: float = 30.0,
                             sleep: Sleep = time.sleep) -> Tuple[List[Dict[str, Any]], bool]:
    """One page of search results and whether another page follows.

    Connection errors are retried up to three times; status errors are not.
    """
    http = session or requests
    url = build_search_url(location, page, page_size, host, sort, price_min, price_max)
    res = call_with_retry(
        lambda: http.get(url, headers=rapidapi_headers(api_key, host), timeout=timeout),
        SEARCH_RETRY_POLICY, sleep=sleep,
    )

    if res.status_code == 429:
        raise ZillowRateLimitError(f"Rate limited searching {location} page {page}")
    if not res.ok:
        raise ZillowAPIError(
            f"HTTP {res.status_code} for {location} page {page}: {res.text[:200]}",
            status=res.status_code, text=res.text[:200],
        )

    data = res.json()
    if not isinstance(data, dict):
        data = {}
    items = extract_results(data)
    return items, has_another_page(data, page, page_size, len(items))


# -- normalization

def map_property_type(zillow_type: Optional[str]) -> str:
    return PROPERTY_TYPES.get((zillow_type or "").upper(), "other")


def normalize_status(status: Optional[str]) -> str:
    s = (status or "").lower()
    if "sale" in s:
        return "active"
    if "sold" in s:
        return "sold"
    if "pending" in s:
        return "pending"
    return "active"


def map_search_item(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Flatten one search result into property columns, or ``None`` if it lacks identity/address."""
    if not item or not item.get("zpid"):
        return None

    address = item.get("address") or item.get("streetAddress") or ""
    city = item.get("city") or ""
    state = item.get("state") or ""
    zip_code = str(item["zipcode"]) if item.get("zipcode") else ""
    if not (address and city and state and zip_code):
        return None

    images = item.get("images")
    if not (isinstance(images, list) and images):
        images = [item["imgSrc"]] if isinstance(item.get("imgSrc"), str) else []

    return {
        "zpid": str(item["zpid"]),
        "address": address,
        "city": city,
        "state": state,
        "zip_code": zip_code,
        "price": item.get("price") or 0,
        "bedrooms": item.get("bedrooms") or 0,
        "bathrooms": item.get("bathrooms") or 0,
        "square_feet": item.get("livingArea"),
        "lot_size_sqft": item.get("lotAreaValue"),
        "year_built": item.get("yearBuilt"),
        "property_type": map_property_type(item.get("propertyType") or item.get("homeType")),
        "listing_status": normalize_status(item.get("statusType") or item.get("brokerStatus")),
        "images": images,
        "latitude": item.get("latitude"),
        "longitude": item.get("longitude"),
    }


def normalize_listing(raw: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], List[str]]:
    """Validate a mapped listing; returns ``(row, [])`` or ``(None, errors)``."""
    try:
        model = PropertyUpsert.model_validate(raw)
    except ValidationError as e:
        errors = [f"zpid {raw.get('zpid')}: {'.'.join(str(p) for p in err['loc'])} {err['msg']}"
                  for err in e.errors()]
        return None, errors
    row = model.model_dump(mode="json")
    row["updated_at"] = datetime.now(timezone.utc).isoformat()
    return row, []


# -- orchestration

def _with_images(rows: List[Dict[str, Any]], api_key: str, images_host: str,
                 session: Optional[requests.Session], sleep: Sleep) -> None:
    for row in rows:
        try:
            urls = fetch_zillow_image_urls(row["zpid"], api_key, host=images_host,
                                           session=session, sleep=sleep)
        except (ZillowAPIError, requests.RequestException) as e:
            logger.warning("Image fetch failed for zpid %s: %s", row["zpid"], e)
            continue
        if urls:
            row["images"] = urls


def ingest_zillow_locations(locations: Iterable[str], api_key: str, client: PostgrestClient,
                            host: str = DEFAULT_HOST, page_size: int = DEFAULT_PAGE_SIZE,
                            max_pages: int = DEFAULT_MAX_PAGES, delay_ms: int = DEFAULT_DELAY_MS,
                            sort: Optional[str] = None, price_min: Optional[int] = None,
                            price_max: Optional[int] = None, fetch_images: bool = False,
                            images_host: str = DEFAULT_IMAGES_HOST,
                            session: Optional[requests.Session] = None,
                            sleep: Sleep = time.sleep) -> IngestSummary:
    summary = IngestSummary(started_at=datetime.now(timezone.utc))

    for location in locations:
        loc = IngestLocationSummary(location=location)
        summary.locations.append(loc)
        try:
            _ingest_location(loc, api_key, client, host, page_size, max_pages, delay_ms,
                             sort, price_min, price_max, fetch_images, images_host, session, sleep)
        except Exception as e:
            logger.exception("Ingestion failed for %s: %s", location, e)
            loc.errors.append(str(e) or e.__class__.__name__)

        summary.totals.attempted += loc.attempted
        summary.totals.transformed += loc.transformed
        summary.totals.inserted_or_updated += loc.inserted_or_updated
        summary.totals.skipped += loc.skipped
        logger.info("Ingested %s: attempted=%d upserted=%d skipped=%d errors=%d",
                    location, loc.attempted, loc.inserted_or_updated, loc.skipped, len(loc.errors))

    return summary


def _ingest_location(loc: IngestLocationSummary, api_key: str, client: PostgrestClient, host: str,
                     page_size: int, max_pages: int, delay_ms: int, sort: Optional[str],
                     price_min: Optional[int], price_max: Optional[int], fetch_images: bool,
                     images_host: str, session: Optional[requests.Session], sleep: Sleep) -> None:
    page = 1
    has_more = True
    rate_limited = 0

    while has_more and page <= max_pages:
        try:
            items, has_next = fetch_zillow_search_page(
                loc.location, page, api_key, page_size=page_size, host=host, sort=sort,
                price_min=price_min, price_max=price_max, session=session, sleep=sleep,
            )
        except ZillowRateLimitError as e:
            rate_limited += 1
            if rate_limited > MAX_PAGE_RATE_LIMIT_RETRIES:
                loc.errors.append(str(e))
                break
            logger.warning("%s; backing off %d ms", e, delay_ms * 2)
            sleep(delay_ms * 2 / 1000)
            continue
        except (ZillowAPIError, requests.RequestException, ValueError) as e:
            loc.errors.append(str(e))
            break
        rate_limited = 0

        loc.attempted += len(items)
        rows: Dict[str, Dict[str, Any]] = {}
        for item in items:
            raw = map_search_item(item)
            if raw is None:
                loc.skipped += 1
                continue
            row, errors = normalize_listing(raw)
            if row is None:
                loc.skipped += 1
                loc.errors.append("; ".join(errors))
                continue
            loc.transformed += 1
            # one upsert batch may not touch the same zpid twice
            rows[row["zpid"]] = row

        if rows:
            batch = list(rows.values())
            if fetch_images:
                _with_images(batch, api_key, images_host, session, sleep)
            try:
                crud.upsert_properties(client, batch)
                loc.inserted_or_updated += len(batch)
            except PostgrestError as e:
                logger.error("Upsert failed for %s page %d: %s", loc.location, page, e)
                loc.errors.append(e.message or "Failed to upsert properties")

        has_more = has_next
        page += 1
        sleep(delay_ms / 1000)

# homematch/couples.py
"""Household ("couples") aggregation: mutual likes, activity feed and stats.

Results are cached per process for a few minutes, keyed by household, and
dropped whenever a member of that household records an interaction.
"""
import threading
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Optional

from .crud import get_properties_by_ids
from .errors import PostgrestError
from .postgrest import PostgrestClient
from .schemas import CouplesStats, HouseholdActivity, MutualLike
from .utils import logger

INTERACTIONS = "user_property_interactions"
MILESTONE_STEP = 5
STREAK_LOOKBACK = 30


class TTLCache:
    """Tiny thread-safe cache whose keys are tuples starting with a household id."""

    def __init__(self, ttl: float, maxsize: int = 1000, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.maxsize = maxsize
        self.clock = clock
        self._data: Dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires, value = item
            if expires <= self.clock():
                del self._data[key]
                return None
            return value

    def set(self, key, value) -> None:
        with self._lock:
            if len(self._data) >= self.maxsize:
                # drop the entry closest to expiry
                oldest = min(self._data, key=lambda k: self._data[k][0])
                del self._data[oldest]
            self._data[key] = (self.clock() + self.ttl, value)

    def delete_household(self, household_id: str) -> None:
        with self._lock:
            for key in [k for k in self._data if k[0] == household_id]:
                del self._data[key]

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


mutual_likes_cache = TTLCache(ttl=5 * 60)
activity_cache = TTLCache(ttl=2 * 60)
stats_cache = TTLCache(ttl=10 * 60)


def milestone_for(total_mutual_likes: int) -> Optional[Dict[str, Any]]:
    if total_mutual_likes > 0 and total_mutual_likes % MILESTONE_STEP == 0:
        return {"type": "mutual_likes", "count": total_mutual_likes}
    return None


def aggregate_mutual_likes(rows: Iterable[Mapping[str, Any]]) -> List[MutualLike]:
    """Group like rows by property; keep properties liked by two or more users."""
    grouped: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        pid = row.get("property_id")
        if not pid:
            continue
        ts = row.get("created_at")
        entry = grouped.setdefault(pid, {"users": {}, "first": ts, "last": ts})
        entry["users"].setdefault(row.get("user_id"), None)
        if ts and (entry["first"] is None or ts < entry["first"]):
            entry["first"] = ts
        if ts and (entry["last"] is None or ts > entry["last"]):
            entry["last"] = ts

    return [
        MutualLike(
            property_id=pid,
            liked_by_count=len(entry["users"]),
            first_liked_at=entry["first"],
            last_liked_at=entry["last"],
            user_ids=[u for u in entry["users"] if u],
        )
        for pid, entry in grouped.items()
        if len(entry["users"]) >= 2
    ]


def _to_utc_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date()


def compute_activity_streak(timestamps: Iterable, today: date) -> int:
    """Consecutive days with activity, counted back from today or yesterday.

    A household that was active yesterday but not yet today keeps its streak.
    """
    days = {d for d in (_to_utc_date(ts) for ts in timestamps) if d}
    if not days:
        return 0
    latest = max(days)
    if latest not in (today, today - timedelta(days=1)):
        return 0

    streak = 0
    day = latest
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


DISPUTE_TYPES = ("like", "dislike", "skip")
DISPUTED_PROPERTY_COLUMNS = "address,price,bedrooms,bathrooms,square_feet,images,listing_status"


def _property_summary(value) -> Dict[str, Any]:
    if isinstance(value, list):
        value = value[0] if value else None
    value = value if isinstance(value, dict) else {}
    return {
        "address": value.get("address") or "Unknown Address",
        "price": value.get("price") or 0,
        "bedrooms": value.get("bedrooms") or 0,
        "bathrooms": value.get("bathrooms") or 0,
        "square_feet": value.get("square_feet"),
        "images": [u for u in value.get("images") or [] if isinstance(u, str)],
        "listing_status": value.get("listing_status") or "unknown",
    }


def _partner(member: Mapping[str, Any], row: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "user_id": member["id"],
        "user_name": member.get("display_name") or member.get("email") or "Household member",
        "interaction_type": row["interaction_type"],
        "created_at": row.get("created_at"),
    }


def find_disputed_properties(rows: Iterable[Mapping[str, Any]],
                             members: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Properties where one member's latest reaction is a like and another's is a pass.

    ``dislike`` and ``skip`` both count as a pass. Rows from users outside
    ``members`` are ignored. Newest disputes come first.
    """
    by_member = {m["id"]: m for m in members if m.get("id")}
    latest: Dict[str, Dict[str, Mapping[str, Any]]] = {}
    summaries: Dict[str, Any] = {}
    for row in rows:
        pid = row.get("property_id")
        uid = row.get("user_id")
        if not pid or uid not in by_member or row.get("interaction_type") not in DISPUTE_TYPES:
            continue
        if summaries.get(pid) is None:
            summaries[pid] = row.get("properties")
        current = latest.setdefault(pid, {}).get(uid)
        if current is None or (row.get("created_at") or "") > (current.get("created_at") or ""):
            latest[pid][uid] = row

    disputed = []
    for pid, per_user in latest.items():
        likes = [r for r in per_user.values() if r["interaction_type"] == "like"]
        passes = [r for r in per_user.values() if r["interaction_type"] != "like"]
        if not likes or not passes:
            continue
        liked, passed = likes[0], passes[0]
        disputed.append({
            "property_id": pid,
            "property": _property_summary(summaries.get(pid)),
            "partner1": _partner(by_member[liked["user_id"]], liked),
            "partner2": _partner(by_member[passed["user_id"]], passed),
            "last_updated": max(liked.get("created_at") or "", passed.get("created_at") or ""),
        })
    disputed.sort(key=lambda d: d["last_updated"], reverse=True)
    return disputed


def attach_properties(client: PostgrestClient, mutual_likes: List[MutualLike]) -> List[Dict[str, Any]]:
    """Pair each mutual like with its property row, or ``None`` when it can't be loaded."""
    items = [ml.model_dump() for ml in mutual_likes]
    if not items:
        return items
    try:
        rows = get_properties_by_ids(client, (ml.property_id for ml in mutual_likes))
        by_id = {str(r.get("id")): r for r in rows}
    except PostgrestError as e:
        logger.warning("Property enrichment for mutual likes failed: %s", e.message)
        by_id = {}
    for item in items:
        item["property"] = by_id.get(item["property_id"])
    return items


class CouplesService:
    def __init__(self, client: PostgrestClient, clock: Callable[[], datetime] = None):
        self.client = client
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        # whether the last get_mutual_likes call was served from cache
        self.last_cache_hit = False

    def get_user_household(self, user_id: str) -> Optional[str]:
        row = (self.client.table("user_profiles").select("household_id")
               .eq("id", user_id).maybe_single().execute().data)
        return (row or {}).get("household_id")

    def get_user_display_name(self, user_id: str) -> str:
        row = (self.client.table("user_profiles").select("display_name,email")
               .eq("id", user_id).maybe_single().execute().data) or {}
        return row.get("display_name") or row.get("email") or "Your partner"

    def get_mutual_likes(self, user_id: str) -> List[MutualLike]:
        self.last_cache_hit = False
        household_id = self.get_user_household(user_id)
        if not household_id:
            return []

        cached = mutual_likes_cache.get((household_id,))
        if cached is not None:
            self.last_cache_hit = True
            return cached

        try:
            raw = self.client.rpc("get_household_mutual_likes", {"p_household_id": household_id}).data or []
            result = [
                MutualLike(
                    property_id=r["property_id"],
                    liked_by_count=int(r.get("liked_by_count") or 0),
                    first_liked_at=r.get("first_liked_at"),
                    last_liked_at=r.get("last_liked_at"),
                    user_ids=r.get("user_ids") or [],
                )
                for r in raw
            ]
        except PostgrestError as e:
            logger.warning("get_household_mutual_likes RPC failed (%s), aggregating client-side", e.message)
            rows = (self.client.table(INTERACTIONS)
                    .select("property_id,user_id,created_at")
                    .eq("household_id", household_id)
                    .eq("interaction_type", "like")
                    .execute().data) or []
            result = aggregate_mutual_likes(rows)

        mutual_likes_cache.set((household_id,), result)
        return result

    def get_household_activity(self, user_id: str, limit: int = 20, offset: int = 0) -> List[HouseholdActivity]:
        household_id = self.get_user_household(user_id)
        if not household_id:
            return []

        key = (household_id, limit, offset)
        cached = activity_cache.get(key)
        if cached is not None:
            return cached

        try:
            raw = self.client.rpc("get_household_activity_enhanced", {
                "p_household_id": household_id,
                "p_limit": limit,
                "p_offset": offset,
            }).data or []
        except PostgrestError as e:
            logger.error("Fetching household activity failed: %s", e.message)
            return []

        mutual_ids = {ml.property_id for ml in self.get_mutual_likes(user_id)}
        result = [
            HouseholdActivity(
                id=str(a["id"]),
                user_id=str(a["user_id"]),
                property_id=str(a["property_id"]),
                interaction_type=a["interaction_type"],
                created_at=a["created_at"],
                user_display_name=a.get("user_display_name") or "Unknown",
                property_address=a.get("property_address") or "",
                property_price=a.get("property_price") or 0,
                property_bedrooms=a.get("property_bedrooms") or 0,
                property_bathrooms=a.get("property_bathrooms") or 0,
                property_images=a.get("property_images") or [],
                is_mutual=a["interaction_type"] == "like" and str(a["property_id"]) in mutual_ids,
            )
            for a in raw
        ]
        activity_cache.set(key, result)
        return result

    def get_household_stats(self, user_id: str) -> Optional[CouplesStats]:
        household_id = self.get_user_household(user_id)
        if not household_id:
            return None

        cached = stats_cache.get((household_id,))
        if cached is not None:
            return cached

        mutual_likes = self.get_mutual_likes(user_id)
        total_likes = (self.client.table(INTERACTIONS)
                       .select("*", count="exact", head=True)
                       .eq("household_id", household_id)
                       .eq("interaction_type", "like")
                       .execute().count) or 0
        recent = (self.client.table(INTERACTIONS)
                  .select("created_at")
                  .eq("household_id", household_id)
                  .order("created_at", desc=True)
                  .limit(STREAK_LOOKBACK)
                  .execute().data) or []

        last_mutual = max((ml.last_liked_at for ml in mutual_likes if ml.last_liked_at), default=None)
        result = CouplesStats(
            total_mutual_likes=len(mutual_likes),
            total_household_likes=total_likes,
            activity_streak_days=compute_activity_streak(
                (r.get("created_at") for r in recent), self.clock().date()),
            last_mutual_like_at=last_mutual,
        )
        stats_cache.set((household_id,), result)
        return result

    def get_disputed_properties(self, user_id: str) -> List[Dict[str, Any]]:
        household_id = self.get_user_household(user_id)
        if not household_id:
            return []

        members = (self.client.table("user_profiles")
                   .select("id,display_name,email")
                   .eq("household_id", household_id)
                   .execute().data) or []
        if len(members) < 2:
            return []

        rows = (self.client.table(INTERACTIONS)
                .select(f"user_id,property_id,interaction_type,created_at,"
                        f"properties({DISPUTED_PROPERTY_COLUMNS})")
                .eq("household_id", household_id)
                .in_("interaction_type", list(DISPUTE_TYPES))
                .order("created_at", desc=True)
                .execute().data) or []
        return find_disputed_properties(rows, members)

    def check_potential_mutual_like(self, user_id: str, property_id: str) -> Dict[str, Any]:
        """Whether another household member already liked ``property_id``."""
        try:
            household_id = self.get_user_household(user_id)
            if not household_id:
                return {"would_be_mutual": False, "partner_user_id": None}
            rows = (self.client.table(INTERACTIONS)
                    .select("user_id")
                    .eq("household_id", household_id)
                    .eq("property_id", property_id)
                    .eq("interaction_type", "like")
                    .neq("user_id", user_id)
                    .execute().data) or []
        except PostgrestError as e:
            logger.error("Checking potential mutual like failed: %s", e.message)
            return {"would_be_mutual": False, "partner_user_id": None}

        if rows:
            return {"would_be_mutual": True, "partner_user_id": rows[0].get("user_id")}
        return {"would_be_mutual": False, "partner_user_id": None}

    def notify_interaction(self, user_id: str, property_id: str, interaction_type: str,
                           household_id: Optional[str] = None) -> Optional[str]:
        """Invalidate household caches; return the partner id when a like became mutual."""
        try:
            household_id = household_id or self.get_user_household(user_id)
        except PostgrestError as e:
            logger.error("notify_interaction: household lookup failed: %s", e.message)
            return None
        if not household_id:
            return None

        self.clear_household_cache(household_id)
        if interaction_type != "like":
            return None

        check = self.check_potential_mutual_like(user_id, property_id)
        if check["would_be_mutual"]:
            logger.info("Mutual like on property %s in household %s", property_id, household_id)
            return check["partner_user_id"]
        return None

    @staticmethod
    def clear_household_cache(household_id: str) -> None:
        for cache in (mutual_likes_cache, activity_cache, stats_cache):
            cache.delete_household(household_id)

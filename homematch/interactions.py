# homematch/interactions.py
"""Recording and listing a user's swipe interactions.

The table stores ``like | dislike | skip | view``; clients speak
``liked | viewed | skip``. ``dislike`` is the historical name of ``skip``
and is read as such everywhere.
"""
from typing import Any, Dict, Iterable, List, Optional

from .errors import PostgrestError
from .postgrest import PostgrestClient
from .schemas import INTERACTION_TYPE_ALIASES, InteractionSummary
from .utils import logger

INTERACTIONS = "user_property_interactions"

UI_TYPE_BY_DB = {
    "like": "liked",
    "view": "viewed",
    "skip": "skip",
    "dislike": "skip",
}


def to_ui_interaction_type(db_type: str) -> str:
    try:
        return UI_TYPE_BY_DB[db_type]
    except KeyError:
        raise ValueError(f"Unknown interaction type: {db_type!r}") from None


def to_db_interaction_type(ui_type: str) -> str:
    try:
        return INTERACTION_TYPE_ALIASES[ui_type]
    except KeyError:
        raise ValueError(f"Unknown interaction type: {ui_type!r}") from None


def db_types_for(ui_type: str) -> List[str]:
    """Every stored value that reads back as ``ui_type`` (``skip`` also matches ``dislike``)."""
    wanted = to_ui_interaction_type(to_db_interaction_type(ui_type))
    return [db for db, ui in UI_TYPE_BY_DB.items() if ui == wanted]


def summarize_interactions(types: Iterable[str]) -> InteractionSummary:
    summary = InteractionSummary()
    for db_type in types:
        ui = UI_TYPE_BY_DB.get(db_type)
        if ui == "liked":
            summary.liked += 1
        elif ui == "viewed":
            summary.viewed += 1
        elif ui == "skip":
            summary.passed += 1
    return summary


def _flatten_property(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # embedded to-one relations can come back as an object or a one-element list
    prop = row.get("property")
    if isinstance(prop, list):
        return prop[0] if prop else None
    return prop


class InteractionService:
    def __init__(self, client: PostgrestClient, couples=None):
        self.client = client
        self.couples = couples

    def record_interaction(self, user_id: str, property_id: str, interaction_type: str) -> Dict[str, Any]:
        """Replace the user's interaction with ``property_id`` by a new one."""
        db_type = to_db_interaction_type(interaction_type)
        household_id = self.couples.get_user_household(user_id) if self.couples else None

        try:
            (self.client.table(INTERACTIONS).delete()
             .eq("user_id", user_id).eq("property_id", property_id).execute())
        except PostgrestError as e:
            # the insert below can still succeed when no previous row exists
            logger.warning("Deleting previous interaction failed: %s", e.message)

        row = {
            "user_id": user_id,
            "property_id": property_id,
            "interaction_type": db_type,
            "household_id": household_id,
        }
        res = self.client.table(INTERACTIONS).insert(row).execute()
        created = res.data[0] if isinstance(res.data, list) and res.data else row

        if self.couples:
            self.couples.notify_interaction(user_id, property_id, db_type, household_id=household_id)
        return created

    def get_interaction_summary(self, user_id: str) -> InteractionSummary:
        rows = (self.client.table(INTERACTIONS).select("interaction_type")
                .eq("user_id", user_id).execute().data) or []
        return summarize_interactions(r.get("interaction_type") for r in rows)

    def list_interactions(self, user_id: str, ui_type: str, cursor: Optional[str] = None,
                          limit: int = 12) -> Dict[str, Any]:
        query = (self.client.table(INTERACTIONS)
                 .select("created_at,property:properties(*)")
                 .eq("user_id", user_id)
                 .in_("interaction_type", db_types_for(ui_type))
                 .order("created_at", desc=True)
                 .limit(limit))
        if cursor:
            query = query.lt("created_at", cursor)
        rows = query.execute().data or []

        items = [p for p in (_flatten_property(r) for r in rows) if p]
        next_cursor = rows[-1].get("created_at") if len(rows) == limit else None
        return {"items": items, "next_cursor": next_cursor}

    def reset_interactions(self, user_id: str) -> int:
        household_id = self.couples.get_user_household(user_id) if self.couples else None
        res = self.client.table(INTERACTIONS).delete().eq("user_id", user_id).execute()
        deleted = len(res.data) if isinstance(res.data, list) else 0
        if self.couples and household_id:
            self.couples.clear_household_cache(household_id)
        logger.info("Reset %d interactions for user %s", deleted, user_id)
        return deleted

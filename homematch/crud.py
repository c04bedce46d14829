# homematch/crud.py
"""Row-level helpers for the ``properties`` table.

Includes the idempotent ``zpid``-keyed upsert used by ingestion.
"""
from typing import Any, Dict, Iterable, List, Optional

from .postgrest import PostgrestClient

PROPERTIES = "properties"


def upsert_properties(client: PostgrestClient, rows: List[Dict[str, Any]]) -> int:
    if not rows:
        return 0
    res = client.table(PROPERTIES).upsert(rows, on_conflict="zpid").execute()
    return len(res.data) if isinstance(res.data, list) else len(rows)


def get_property(client: PostgrestClient, property_id: str, columns: str = "*") -> Optional[Dict[str, Any]]:
    return client.table(PROPERTIES).select(columns).eq("id", property_id).maybe_single().execute().data


def get_properties_by_ids(client: PostgrestClient, ids: Iterable[str], columns: str = "*") -> List[Dict[str, Any]]:
    ids = [i for i in dict.fromkeys(ids) if i]
    if not ids:
        return []
    res = client.table(PROPERTIES).select(columns).in_("id", ids).execute()
    return res.data or []

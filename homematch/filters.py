# homematch/filters.py
"""Filter predicates for the PostgREST query string.

PostgREST encodes boolean logic as text: ``or(a.eq.1,and(b.eq.2,c.eq.3))``.
Parentheses and commas are structural there, so any user value that reaches
a filter must go through ``sanitize_filter_value`` first. Filters are built
as small predicate objects and only turned into text by ``to_postgrest``.
"""
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

__all__ = [
    "sanitize_filter_value", "build_city_state_or_clause", "build_text_search_clause",
    "Predicate", "Compare", "Eq", "ILike", "In", "And", "Or", "join_predicates",
]

_STRUCTURAL = re.compile(r"[(),]")
_STRIPPED = re.compile(r"[\"'`;\\/]")
_COLUMN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def sanitize_filter_value(value: Any) -> str:
    """Make an untrusted value safe to splice into a PostgREST filter.

    ``(``, ``)`` and ``,`` become a space; quotes, backticks, semicolons and
    slashes are dropped; the result is trimmed. Applying it twice gives the
    same result as applying it once.
    """
    if value is None:
        return ""
    text = _STRUCTURAL.sub(" ", str(value))
    text = _STRIPPED.sub("", text)
    return text.strip()


def validate_column(name: str) -> str:
    if not _COLUMN.match(name or ""):
        raise ValueError(f"Invalid filter column: {name!r}")
    return name


def render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return sanitize_filter_value(value)


class Predicate:
    def to_postgrest(self) -> str:
        raise NotImplementedError

    def is_empty(self) -> bool:
        return False


@dataclass(frozen=True)
class Compare(Predicate):
    column: str
    value: Any
    op: str = "eq"

    def is_empty(self) -> bool:
        return render_value(self.value) == ""

    def to_postgrest(self) -> str:
        return f"{validate_column(self.column)}.{self.op}.{render_value(self.value)}"


class Eq(Compare):
    pass


@dataclass(frozen=True)
class ILike(Predicate):
    """Case-insensitive substring match (``%value%``)."""
    column: str
    value: Any

    def is_empty(self) -> bool:
        return sanitize_filter_value(self.value) == ""

    def to_postgrest(self) -> str:
        return f"{validate_column(self.column)}.ilike.%{sanitize_filter_value(self.value)}%"


@dataclass(frozen=True)
class In(Predicate):
    column: str
    values: Tuple[Any, ...]

    def rendered(self) -> List[str]:
        return [v for v in (render_value(x) for x in self.values) if v]

    def is_empty(self) -> bool:
        return not self.rendered()

    def to_postgrest(self) -> str:
        return f"{validate_column(self.column)}.in.({','.join(self.rendered())})"


@dataclass(frozen=True)
class And(Predicate):
    items: Tuple[Predicate, ...]

    def is_empty(self) -> bool:
        return not self.items or any(p.is_empty() for p in self.items)

    def to_postgrest(self) -> str:
        return "and(" + join_predicates(self.items) + ")"


@dataclass(frozen=True)
class Or(Predicate):
    items: Tuple[Predicate, ...]

    def is_empty(self) -> bool:
        return all(p.is_empty() for p in self.items)

    def to_postgrest(self) -> str:
        return "or(" + join_predicates(self.items) + ")"


def join_predicates(items: Iterable[Predicate]) -> str:
    """Comma-join predicates as the body of an ``or=(...)``/``and=(...)`` parameter."""
    return ",".join(p.to_postgrest() for p in items if not p.is_empty())


CityStateInput = Union[Mapping[str, Any], Sequence[Any], Any]


def _pair_fields(pair: CityStateInput) -> Tuple[Any, Any]:
    if isinstance(pair, Mapping):
        return pair.get("city"), pair.get("state")
    if isinstance(pair, (tuple, list)) and len(pair) == 2:
        return pair[0], pair[1]
    return getattr(pair, "city", None), getattr(pair, "state", None)


def city_state_predicates(pairs: Optional[Iterable[CityStateInput]]) -> List[Predicate]:
    """One ``and(city.eq.X,state.eq.Y)`` per usable pair, deduped case-insensitively."""
    preds: List[Predicate] = []
    seen = set()
    for pair in pairs or []:
        city_raw, state_raw = _pair_fields(pair)
        city = sanitize_filter_value(city_raw)
        state = sanitize_filter_value(state_raw)
        if not city or not state:
            continue
        key = f"{city.lower()}|{state.lower()}"
        if key in seen:
            continue
        seen.add(key)
        preds.append(And((Eq("city", city), Eq("state", state))))
    return preds


def build_city_state_or_clause(pairs: Optional[Iterable[CityStateInput]]) -> Optional[str]:
    """Body of an ``or=(...)`` filter matching any of the given city/state pairs.

    Returns ``None`` when nothing usable is left after sanitizing.
    """
    preds = city_state_predicates(pairs)
    if not preds:
        return None
    return join_predicates(preds)


TEXT_SEARCH_COLUMNS = ("address", "city", "description")


def build_text_search_clause(text: Any, columns: Sequence[str] = TEXT_SEARCH_COLUMNS) -> Optional[str]:
    term = sanitize_filter_value(text)
    if not term:
        return None
    return join_predicates(ILike(col, term) for col in columns)

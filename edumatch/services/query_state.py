"""
Query-State Synchronizer

Keeps explore page state {tab, sort, page, filters, search} consistent with
the URL query string in both directions:

- parse_query_state: URL -> state, validating every value against its
  allow-list and falling back to defaults.
- build_query_string: state -> canonical URL query (defaults elided).
- QueryStateSynchronizer: owns the state, gates data loads until the URL has
  been read, and writes the URL back through a HistoryAdapter only when the
  canonical query actually changed.

URL layout:
    ?tab=scholarships&sort=deadline&page=2
    &scholarships_country=USA,UK&scholarships_feeMin=1000&scholarships_feeMax=5000
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Union
from urllib.parse import parse_qsl, urlencode

from edumatch.core.log import get_logger
from edumatch.schemas.schemas import TabType, SortOption

log = get_logger(__name__)

FilterState = Dict[str, List[str]]

DEFAULT_TAB = TabType.programmes
DEFAULT_SORT = SortOption.most_popular
DEFAULT_PAGE = 1

LIST_FILTER_KEYS = (
    "discipline",
    "country",
    "duration",
    "degreeLevel",
    "attendance",
    "researchField",
    "essayRequired",
    "contractType",
    "jobType",
)

# range filter -> (URL suffix for min, URL suffix for max, default min, default max)
RANGE_FILTERS = {
    "feeRange": ("feeMin", "feeMax", 0, 1000000),
    "salaryRange": ("salaryMin", "salaryMax", 0, 200000),
}

# items per page for each tab's listing
PAGE_SIZES = {
    TabType.programmes: 10,
    TabType.scholarships: 10,
    TabType.research: 10,
}


@dataclass
class QueryState:
    active_tab: TabType = DEFAULT_TAB
    sort_by: SortOption = DEFAULT_SORT
    current_page: int = DEFAULT_PAGE
    selected_filters: FilterState = field(default_factory=dict)
    search: str = ""


@dataclass
class ExploreQuery:
    """Parameters for one listing load, derived from QueryState."""
    tab: TabType
    page: int
    limit: int
    sort_by: str
    search: str = ""
    filters: FilterState = field(default_factory=dict)
    min_fee: Optional[float] = None
    max_fee: Optional[float] = None
    min_salary: Optional[float] = None
    max_salary: Optional[float] = None
    essay_required: Optional[bool] = None


class HistoryAdapter(Protocol):
    """Non-navigating browser history: current location plus replace()."""

    @property
    def path(self) -> str: ...

    @property
    def search(self) -> str: ...

    def replace(self, url: str) -> None: ...


class InMemoryHistory:
    """HistoryAdapter that records every replace() call."""

    def __init__(self, path: str = "/explore", search: str = ""):
        self._path = path
        self._search = search.lstrip("?")
        self.entries: List[str] = []

    @property
    def path(self) -> str:
        return self._path

    @property
    def search(self) -> str:
        return self._search

    def replace(self, url: str) -> None:
        self.entries.append(url)
        _, _, query = url.partition("?")
        self._search = query


# ============================================================
# PARSING
# ============================================================

Params = Union[str, Mapping[str, str]]


def _as_pairs(params: Params) -> List[tuple]:
    if isinstance(params, str):
        return parse_qsl(params.lstrip("?"), keep_blank_values=True)
    return list(params.items())


def _parse_tab(value: Optional[str]) -> TabType:
    try:
        return TabType(value)
    except ValueError:
        return DEFAULT_TAB


def _parse_sort(value: Optional[str]) -> SortOption:
    try:
        return SortOption(value)
    except ValueError:
        return DEFAULT_SORT


def _parse_page(value: Optional[str]) -> Optional[int]:
    """Positive integer page, or None when absent or malformed."""
    if value is None:
        return None
    text = value.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    page = int(text)
    return page if page > 0 else None


def _split(value: str) -> List[str]:
    return [v for v in (part.strip() for part in value.split(",")) if v]


def parse_filters(tab: TabType, params: Params) -> FilterState:
    """Read the <tab>_<key> filters for one tab."""
    values = dict(_as_pairs(params))
    prefix = f"{tab.value}_"
    filters: FilterState = {}

    for key in LIST_FILTER_KEYS:
        raw = values.get(prefix + key)
        if raw:
            selected = _split(raw)
            if selected:
                filters[key] = selected

    for name, (min_key, max_key, default_min, default_max) in RANGE_FILTERS.items():
        low = values.get(prefix + min_key)
        high = values.get(prefix + max_key)
        if low or high:
            filters[name] = [f"{low or default_min}-{high or default_max}"]

    return filters


def parse_query_state(params: Params) -> QueryState:
    """
    Build the initial state from URL query parameters.

    Invalid tab/sort fall back to defaults; a page that is not a positive
    integer is treated as absent.
    """
    values = dict(_as_pairs(params))
    tab = _parse_tab(values.get("tab"))
    page = _parse_page(values.get("page"))

    return QueryState(
        active_tab=tab,
        sort_by=_parse_sort(values.get("sort")),
        current_page=page or DEFAULT_PAGE,
        selected_filters=parse_filters(tab, values),
        search=(values.get("search") or "").strip(),
    )


# ============================================================
# SERIALIZING
# ============================================================

def filters_to_params(tab: TabType, filters: FilterState) -> Dict[str, str]:
    """Encode a filter mapping as <tab>_<key> URL parameters."""
    prefix = f"{tab.value}_"
    params: Dict[str, str] = {}

    for key, values in filters.items():
        if not values:
            continue
        if key in RANGE_FILTERS:
            min_key, max_key, _, _ = RANGE_FILTERS[key]
            low, sep, high = values[0].partition("-")
            if sep:
                params[prefix + min_key] = low
                params[prefix + max_key] = high
        else:
            params[prefix + key] = ",".join(values)

    return params


def build_query_string(state: QueryState, current: Params = "") -> str:
    """
    Canonical query for state, layered over the current URL params.

    tab is always written; sort and page are written only when they differ
    from their defaults, otherwise removed. Every other key is preserved.
    """
    params = dict(_as_pairs(current))

    params["tab"] = state.active_tab.value

    if state.sort_by != DEFAULT_SORT:
        params["sort"] = state.sort_by.value
    else:
        params.pop("sort", None)

    if state.current_page != DEFAULT_PAGE:
        params["page"] = str(state.current_page)
    else:
        params.pop("page", None)

    return urlencode(params, safe=",")


def _parse_range(values: Optional[List[str]]):
    if not values:
        return None, None
    low, sep, high = values[0].partition("-")
    if not sep:
        return None, None
    try:
        return float(low), float(high)
    except ValueError:
        return None, None


def to_explore_query(state: QueryState) -> ExploreQuery:
    """Listing parameters for the active tab."""
    filters = {k: v for k, v in state.selected_filters.items() if v and k not in RANGE_FILTERS}
    min_fee, max_fee = _parse_range(state.selected_filters.get("feeRange"))
    min_salary, max_salary = _parse_range(state.selected_filters.get("salaryRange"))

    essay = filters.pop("essayRequired", None)
    essay_required = None
    if essay and len(essay) == 1:
        essay_required = essay[0] == "Yes"

    return ExploreQuery(
        tab=state.active_tab,
        page=state.current_page,
        limit=PAGE_SIZES[state.active_tab],
        sort_by=state.sort_by.value,
        search=state.search,
        filters=filters,
        min_fee=min_fee,
        max_fee=max_fee,
        min_salary=min_salary,
        max_salary=max_salary,
        essay_required=essay_required,
    )


# ============================================================
# SYNCHRONIZER
# ============================================================

class QueryStateSynchronizer:
    """
    Two-way binding between QueryState and a HistoryAdapter.

    Usage:
        sync = QueryStateSynchronizer(history)
        sync.initialize()
        sync.change_sort(SortOption.deadline)   # URL rewritten
        query = sync.load_request()
    """

    def __init__(self, history: HistoryAdapter):
        self.history = history
        self.state = QueryState()
        self.filters_initialized = False

    def initialize(self) -> QueryState:
        """Read state from the current URL; opens the gate for data loads."""
        self.state = parse_query_state(self.history.search)
        self.filters_initialized = True
        log.debug("Explore state initialized from URL: %s", self.state)
        return self.state

    def reflect(self) -> bool:
        """
        Write the canonical query to history if it differs from the
        current one. Returns True when a replace() happened.
        """
        if not self.filters_initialized:
            return False

        query = build_query_string(self.state, self.history.search)
        if query == self.history.search:
            return False

        self._write(query)
        return True

    def change_tab(self, tab: TabType) -> None:
        """Switch tab; page resets, filters stay in memory."""
        self.state.active_tab = TabType(tab)
        self.state.current_page = DEFAULT_PAGE
        self.reflect()

    def change_sort(self, sort_by: SortOption) -> None:
        self.state.sort_by = SortOption(sort_by)
        self.state.current_page = DEFAULT_PAGE
        self.reflect()

    def change_page(self, page: int) -> None:
        if page < 1:
            return
        self.state.current_page = page
        self.reflect()

    def change_filters(self, filters: FilterState) -> None:
        """
        Replace the whole filter mapping (never a delta) and reset the page.
        Ignored until the URL has been read.
        """
        if not self.filters_initialized:
            return
        self.state.selected_filters = {k: list(v) for k, v in filters.items() if v}
        self.state.current_page = DEFAULT_PAGE

        # drop this tab's old filter keys; other tabs keep theirs
        prefix = f"{self.state.active_tab.value}_"
        params = {k: v for k, v in _as_pairs(self.history.search) if not k.startswith(prefix)}
        params.update(filters_to_params(self.state.active_tab, self.state.selected_filters))
        self._write(build_query_string(self.state, params))

    def change_search(self, query: str) -> None:
        """Set or clear the search term; the URL is written immediately."""
        term = (query or "").strip()
        self.state.search = term
        self.state.current_page = DEFAULT_PAGE

        params = dict(_as_pairs(self.history.search))
        if term:
            params["search"] = term
        else:
            params.pop("search", None)
        params.pop("page", None)
        self._write(urlencode(params, safe=","))

    def _write(self, search: str) -> None:
        if search != self.history.search:
            self.history.replace(f"{self.history.path}?{search}" if search else self.history.path)

    def load_request(self) -> Optional[ExploreQuery]:
        """Listing parameters, or None while the URL has not been read."""
        if not self.filters_initialized:
            return None
        return to_explore_query(self.state)

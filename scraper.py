import os
import json
import datetime as dt
import requests
from typing import Dict, Iterable, List, Optional, Sequence
from bs4 import BeautifulSoup

from config import Settings
from errors import FetchTimeout, NetworkError, ParseError, UpstreamServerError
from models import Deliverable, DeliverableFilter, SortBy

QUERY_PATH = os.path.join(os.path.dirname(__file__), "queries", "deliverables.graphql")

with open(QUERY_PATH, "r") as f:
    DELIVERABLES_QUERY = f.read()


def deliverables_query(settings: Settings, offset: int = 0, limit: int = 20,
                       sort_by: SortBy = SortBy.ALPHABETICAL,
                       project_slugs: Sequence[str] = (), category_ids: Sequence[int] = ()) -> Dict:
    variables = {
        "startDate": settings.window_start,
        "endDate": settings.window_end,
        "limit": limit,
        "offset": offset,
        "sortBy": sort_by.value,
    }
    if project_slugs:
        variables["projectSlugs"] = list(project_slugs)
    if category_ids:
        variables["categoryIds"] = list(category_ids)
    return {
        "operationName": "deliverables",
        "query": DELIVERABLES_QUERY,
        "variables": variables,
    }


def _error_page_title(text: str) -> str:
    soup = BeautifulSoup(text, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return "HTML error page"


def _post(session: requests.Session, settings: Settings, body: Dict, offset: int) -> List[Dict]:
    headers = {"Content-Type": "application/json", "User-Agent": settings.user_agent}
    try:
        resp = session.post(settings.endpoint, data=json.dumps(body), headers=headers,
                            timeout=settings.timeout_seconds)
    except requests.Timeout as e:
        raise FetchTimeout(f"Request timed out after {settings.timeout_seconds}s", offset=offset) from e
    except requests.RequestException as e:
        raise NetworkError(f"Request failed: {e}", offset=offset) from e

    text = resp.text or ""
    if text.lstrip().startswith("<"):
        raise UpstreamServerError(f"Server error: {_error_page_title(text)}",
                                  status=resp.status_code, offset=offset)
    if resp.status_code >= 400:
        raise UpstreamServerError(f"HTTP {resp.status_code}: {text[:200]}",
                                  status=resp.status_code, offset=offset)

    try:
        payload = json.loads(text)
    except ValueError as e:
        raise ParseError(f"Malformed JSON: {e}", status=resp.status_code, offset=offset) from e

    try:
        page = payload["data"]["progressTracker"]["deliverables"]["metaData"]
    except (KeyError, TypeError) as e:
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            raise ParseError(f"GraphQL errors: {messages}", status=resp.status_code, offset=offset) from e
        raise ParseError(f"Unexpected response shape, missing {e}", status=resp.status_code, offset=offset) from e

    if page is None:
        return []
    if not isinstance(page, list):
        raise ParseError("Deliverable metadata is not a list", status=resp.status_code, offset=offset)
    return page


def apply_filters(deliverables: List[Deliverable], filters: Iterable[DeliverableFilter],
                  today: Optional[dt.date] = None) -> List[Deliverable]:
    today_s = (today or dt.date.today()).isoformat()
    result = list(deliverables)
    for flt in filters:
        if flt is DeliverableFilter.FUTURE:
            result = [d for d in result if d.end_date and d.end_date > today_s]
        elif flt is DeliverableFilter.PAST:
            result = [d for d in result if d.end_date and d.end_date <= today_s]
        elif flt is DeliverableFilter.ENDING_SOONEST:
            # undated items sort last
            result.sort(key=lambda d: (d.end_date or "9999-12-31", d.start_date or "9999-12-31"))
    return result


def fetch_deliverables(session: requests.Session, settings: Settings,
                       sort_by: SortBy = SortBy.ALPHABETICAL,
                       filters: Iterable[DeliverableFilter] = (),
                       project_slugs: Sequence[str] = (), category_ids: Sequence[int] = (),
                       today: Optional[dt.date] = None) -> List[Deliverable]:
    records: List[Dict] = []
    offset = 0
    pages = 0

    while True:
        if pages >= settings.max_pages:
            raise UpstreamServerError(f"Gave up after {pages} pages without an empty page", offset=offset)
        print(f"🌐 Fetching deliverables at offset {offset}")
        body = deliverables_query(settings, offset, settings.page_size, sort_by, project_slugs, category_ids)
        page = _post(session, settings, body, offset)
        pages += 1
        if not page:
            break
        records.extend(page)
        offset += settings.page_size

    try:
        deliverables = [Deliverable.from_api(r) for r in records]
    except (AttributeError, TypeError, ValueError) as e:
        raise ParseError(f"Invalid deliverable record: {e}") from e

    print(f"✅ Retrieved {len(deliverables)} deliverables in {pages} requests.")
    return apply_filters(deliverables, filters, today)

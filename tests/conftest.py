import json
import datetime as dt

import pytest
import requests

import storage
from config import Settings
from models import Deliverable, Snapshot
from pipeline import RunContext


class FakeResponse:
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code


class FakeSession:
    """Replays queued responses (or raises queued exceptions) for each POST."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "body": json.loads(data), "timeout": timeout})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        pass


def api_record(n, **overrides):
    record = {
        "uuid": f"uuid-{n}",
        "slug": f"deliverable-{n}",
        "title": f"Deliverable {n}",
        "description": f"Description {n}",
        "startDate": "2021-01-01",
        "endDate": "2021-06-30",
        "numberOfDisciplines": 1,
        "numberOfTeams": 1,
        "updateDate": "2020-12-15",
        "card": None,
        "projects": [{"title": "Star Citizen"}],
    }
    record.update(overrides)
    return record


def page(records, status_code=200):
    body = {"data": {"progressTracker": {"deliverables": {"totalCount": 0, "metaData": records}}}}
    return FakeResponse(json.dumps(body), status_code)


def pages_of(*sizes):
    responses, n = [], 0
    for size in sizes:
        responses.append(page([api_record(n + i) for i in range(size)]))
        n += size
    return responses


def make(id_, title, end_date="2021-01-01", description="d", start_date="2020-06-01"):
    return Deliverable(id=id_, title=title, description=description,
                       start_date=start_date, end_date=end_date)


def snap(day, *items):
    return Snapshot(day=dt.date.fromisoformat(day), deliverables=tuple(items))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        endpoint="https://example.test/graphql",
        timeout_seconds=10,
        db_path=str(tmp_path / "roadmap.db"),
        export_dir=str(tmp_path / "reports"),
    )


@pytest.fixture
def db_path(settings):
    storage.init_db(settings.db_path)
    return settings.db_path


@pytest.fixture
def make_ctx(settings, db_path):
    def _make(responses, today=dt.date(2021, 3, 1)):
        return RunContext(settings=settings, session=FakeSession(responses), today=today)
    return _make


@pytest.fixture
def timeout_error():
    return requests.Timeout("read timed out")

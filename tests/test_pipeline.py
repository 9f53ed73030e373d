import datetime as dt
import json
import os
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

import storage
from conftest import FakeResponse, api_record, make, page, pages_of
from errors import NetworkError, UpstreamServerError
from models import DeliverableFilter, Outcome
from pipeline import compare_days, compare_latest_two, export_snapshots, refresh_and_compare, submit

MARCH_1 = dt.date(2021, 3, 1)
MARCH_8 = dt.date(2021, 3, 8)


def test_first_pull_has_nothing_to_compare(make_ctx, db_path):
    result = refresh_and_compare(make_ctx(pages_of(20, 5, 0)))

    assert result.outcome is Outcome.INSUFFICIENT_HISTORY
    assert result.fetched_count == 25
    assert result.report is None
    assert storage.count(db_path) == 1


def test_identical_pull_reports_no_change(make_ctx, db_path):
    refresh_and_compare(make_ctx(pages_of(3, 0), today=MARCH_1))

    result = refresh_and_compare(make_ctx(pages_of(3, 0), today=MARCH_8))

    assert result.outcome is Outcome.NO_CHANGE
    assert result.message == "No changes have been detected since the last pull."
    assert storage.list_days(db_path) == [MARCH_1]


def test_changed_pull_renders_report(make_ctx, db_path):
    refresh_and_compare(make_ctx([page([api_record(1), api_record(2)]), page([])], today=MARCH_1))
    second = [page([api_record(1, endDate="2021-12-31"), api_record(3)]), page([])]

    result = refresh_and_compare(make_ctx(second, today=MARCH_8))

    assert result.outcome is Outcome.CHANGED
    changes = result.change_set
    assert [d.id for d in changes.removed] == ["uuid-2"]
    assert [d.id for d in changes.added] == ["uuid-3"]
    assert [u.new.id for u in changes.updated] == ["uuid-1"]
    assert result.filename == "2021-03-08-Progress-Tracker-Delta.md"
    assert "shifted from 30 June 2021 to 31 December 2021" in result.report
    assert "returned 2 deliverables" in result.message
    assert "1 modifications, 1 removals, and 1 additions" in result.message


def test_fetch_failure_persists_nothing(make_ctx, db_path):
    ctx = make_ctx(pages_of(20) + [requests.ConnectionError("reset")])

    with pytest.raises(NetworkError):
        refresh_and_compare(ctx)

    assert storage.count(db_path) == 0


def test_filters_reach_the_stored_snapshot(make_ctx, db_path):
    records = [api_record(1, endDate="2021-01-01"), api_record(2, endDate="2021-12-01")]
    refresh_and_compare(make_ctx([page(records), page([])]), filters=[DeliverableFilter.FUTURE])

    [snapshot] = storage.latest(db_path, 1)
    assert [d.id for d in snapshot.deliverables] == ["uuid-2"]


def test_compare_latest_two(make_ctx, db_path):
    ctx = make_ctx([])
    assert compare_latest_two(ctx).outcome is Outcome.INSUFFICIENT_HISTORY

    refresh_and_compare(make_ctx([page([api_record(1)]), page([])], today=MARCH_1))
    refresh_and_compare(make_ctx([page([api_record(1, title="Renamed")]), page([])], today=MARCH_8))

    result = compare_latest_two(ctx)

    assert result.outcome is Outcome.CHANGED
    assert ctx.session.calls == []
    assert result.change_set.older_day == MARCH_1
    assert result.change_set.newer_day == MARCH_8
    assert 'Title has been updated from "Deliverable 1" to "Renamed"' in result.report


def test_compare_days_picks_closest_snapshots(make_ctx, db_path):
    for day, title in [(dt.date(2021, 1, 1), "A"), (dt.date(2021, 2, 1), "B"), (dt.date(2021, 3, 1), "C")]:
        refresh_and_compare(make_ctx([page([api_record(1, title=title)]), page([])], today=day))
    ctx = make_ctx([])

    result = compare_days(ctx, start=dt.date(2021, 1, 15), end=dt.date(2021, 2, 20))
    assert (result.change_set.older_day, result.change_set.newer_day) == (dt.date(2021, 1, 1), dt.date(2021, 2, 1))

    result = compare_days(ctx, end=dt.date(2021, 2, 1))
    assert result.change_set.older_day == dt.date(2021, 1, 1)

    assert compare_days(ctx, start=dt.date(2021, 3, 1), end=dt.date(2021, 2, 1)).outcome is Outcome.INSUFFICIENT_HISTORY
    assert compare_days(ctx, end=dt.date(2020, 1, 1)).outcome is Outcome.INSUFFICIENT_HISTORY


def test_submit_returns_future_with_result(make_ctx, db_path):
    future = submit(refresh_and_compare, make_ctx(pages_of(2, 0)))
    assert future.result(timeout=5).outcome is Outcome.INSUFFICIENT_HISTORY


def test_submit_surfaces_errors_through_future(make_ctx, db_path):
    ctx = make_ctx([FakeResponse("<html><title>Bad Gateway</title></html>", 502)])
    future = submit(refresh_and_compare, ctx)

    with pytest.raises(UpstreamServerError):
        future.result(timeout=5)


def test_concurrent_refreshes_store_one_snapshot(make_ctx, db_path):
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [submit(refresh_and_compare, make_ctx(pages_of(20, 3, 0)), executor=pool) for _ in range(2)]
        outcomes = {f.result(timeout=5).outcome for f in futures}

    assert outcomes == {Outcome.INSUFFICIENT_HISTORY, Outcome.NO_CHANGE}
    assert storage.count(db_path) == 1


def _store_three_days(db_path):
    storage.persist(db_path, MARCH_1, [make("a", "Alpha")])
    storage.persist(db_path, dt.date(2021, 3, 4), [make("a", "Alpha"), make("b", "Beta")])
    storage.persist(db_path, MARCH_8, [make("b", "Beta", end_date="2021-12-31")])


def test_export_defaults_to_latest_snapshot(make_ctx, db_path, settings):
    _store_three_days(db_path)

    paths = export_snapshots(make_ctx([]))

    assert paths == [os.path.join(settings.export_dir, "2021-03-08.json")]
    with open(paths[0], encoding="utf-8") as f:
        data = json.load(f)
    assert [d["id"] for d in data] == ["b"]
    assert data[0]["end_date"] == "2021-12-31"


def test_export_day_uses_snapshot_on_or_before(make_ctx, db_path, settings):
    _store_three_days(db_path)

    paths = export_snapshots(make_ctx([]), day=dt.date(2021, 3, 6))

    assert [os.path.basename(p) for p in paths] == ["2021-03-04.json"]


def test_export_all_days(make_ctx, db_path, settings):
    _store_three_days(db_path)

    paths = export_snapshots(make_ctx([]), all_days=True)

    assert sorted(os.listdir(settings.export_dir)) == ["2021-03-01.json", "2021-03-04.json", "2021-03-08.json"]
    assert len(paths) == 3


def test_export_with_nothing_stored(make_ctx, db_path, settings):
    assert export_snapshots(make_ctx([])) == []
    assert export_snapshots(make_ctx([]), day=MARCH_1) == []
    assert not os.path.exists(settings.export_dir)

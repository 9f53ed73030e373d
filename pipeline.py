import time
import threading
import datetime as dt
import requests
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence

import storage
from config import Settings
from diffing import compute_changes
from exporter import render, report_filename, snapshot_filename, write_json
from models import ChangeSet, DeliverableFilter, Outcome, Snapshot, SortBy
from scraper import fetch_deliverables
from summarize import outcome_message

# one fetch+persist cycle at a time per process
_REFRESH_LOCK = threading.Lock()


@dataclass
class RunContext:
    settings: Settings
    session: requests.Session
    today: dt.date = field(default_factory=dt.date.today)

    @classmethod
    def create(cls, settings: Settings, today: Optional[dt.date] = None) -> "RunContext":
        storage.init_db(settings.db_path)
        return cls(settings=settings, session=requests.Session(), today=today or dt.date.today())

    def close(self) -> None:
        self.session.close()


@dataclass
class PipelineResult:
    outcome: Outcome
    message: str
    change_set: Optional[ChangeSet] = None
    report: Optional[str] = None
    filename: Optional[str] = None
    fetched_count: Optional[int] = None
    elapsed_ms: Optional[int] = None


def _compare(older: Snapshot, newer: Snapshot, fetched: Optional[int] = None,
             elapsed_ms: Optional[int] = None) -> PipelineResult:
    changes = compute_changes(older, newer)
    return PipelineResult(
        outcome=Outcome.CHANGED,
        message=outcome_message(Outcome.CHANGED, changes, fetched, elapsed_ms),
        change_set=changes,
        report=render(changes),
        filename=report_filename(newer.day),
        fetched_count=fetched,
        elapsed_ms=elapsed_ms,
    )


def _insufficient(fetched: Optional[int] = None) -> PipelineResult:
    return PipelineResult(
        outcome=Outcome.INSUFFICIENT_HISTORY,
        message=outcome_message(Outcome.INSUFFICIENT_HISTORY),
        fetched_count=fetched,
    )


def refresh_and_compare(ctx: RunContext, filters: Iterable[DeliverableFilter] = (),
                        sort_by: SortBy = SortBy.ALPHABETICAL,
                        project_slugs: Sequence[str] = (), category_ids: Sequence[int] = ()) -> PipelineResult:
    with _REFRESH_LOCK:
        start = time.monotonic()
        deliverables = fetch_deliverables(ctx.session, ctx.settings, sort_by, filters,
                                          project_slugs, category_ids, today=ctx.today)
        elapsed_ms = int((time.monotonic() - start) * 1000)

        stored = storage.persist(ctx.settings.db_path, ctx.today, deliverables)
        if stored is storage.PersistResult.SKIPPED:
            return PipelineResult(
                outcome=Outcome.NO_CHANGE,
                message=outcome_message(Outcome.NO_CHANGE),
                fetched_count=len(deliverables),
                elapsed_ms=elapsed_ms,
            )
        snapshots = storage.latest(ctx.settings.db_path, 2)

    if len(snapshots) < 2:
        return _insufficient(len(deliverables))
    newer, older = snapshots
    return _compare(older, newer, len(deliverables), elapsed_ms)


def compare_latest_two(ctx: RunContext) -> PipelineResult:
    snapshots = storage.latest(ctx.settings.db_path, 2)
    if len(snapshots) < 2:
        return _insufficient()
    newer, older = snapshots
    return _compare(older, newer)


def compare_days(ctx: RunContext, start: Optional[dt.date] = None,
                 end: Optional[dt.date] = None) -> PipelineResult:
    """Compare the snapshots closest on or before `start` and `end`.

    Without `start`, the snapshot immediately before `end` is used; without
    `end`, the most recent one.
    """
    if start is None and end is None:
        return compare_latest_two(ctx)

    db_path = ctx.settings.db_path
    newer = storage.snapshot_on_or_before(db_path, end) if end else next(iter(storage.latest(db_path, 1)), None)
    if newer is None:
        return _insufficient()
    older = storage.snapshot_on_or_before(db_path, start) if start else storage.snapshot_before(db_path, newer.day)
    if older is None or older.day >= newer.day:
        return _insufficient()
    return _compare(older, newer)


def export_snapshots(ctx: RunContext, day: Optional[dt.date] = None, all_days: bool = False) -> List[str]:
    """Write stored snapshots to `<day>.json` files under the export directory.

    Exports the snapshot on or before `day` (the latest one without it), or
    every stored day with `all_days`. Returns the written paths.
    """
    db_path = ctx.settings.db_path
    if all_days:
        snapshots = [storage.snapshot_on_or_before(db_path, d) for d in storage.list_days(db_path)]
    elif day is not None:
        snapshots = [storage.snapshot_on_or_before(db_path, day)]
    else:
        snapshots = storage.latest(db_path, 1)

    paths = []
    for s in snapshots:
        if s is None:
            continue
        data = [d.to_dict() for d in s.deliverables]
        paths.append(write_json(data, snapshot_filename(s.day), ctx.settings.export_dir))
    return paths


def submit(fn: Callable[..., PipelineResult], ctx: RunContext,
           executor: Optional[ThreadPoolExecutor] = None, **kwargs) -> "Future[PipelineResult]":
    """Run a pipeline call as its own task; errors surface through the future."""
    if executor is not None:
        return executor.submit(fn, ctx, **kwargs)

    own = ThreadPoolExecutor(max_workers=1)
    future = own.submit(fn, ctx, **kwargs)
    own.shutdown(wait=False)
    return future

from collections import OrderedDict
from typing import Dict, List, Sequence, Set, Tuple

from models import (
    TRACKED_FIELDS, UNANNOUNCED, AmbiguousMatch, ChangeSet, Deliverable,
    FieldDiff, Snapshot, UpdatedDeliverable,
)


def display_title(d: Deliverable) -> str:
    # placeholder titles only differ by description
    if d.title == UNANNOUNCED:
        return f"{d.title} ({d.description})"
    return d.title


def field_diffs(old: Deliverable, new: Deliverable) -> List[FieldDiff]:
    return [
        FieldDiff(name, old.tracked(name), new.tracked(name))
        for name in TRACKED_FIELDS
        if old.tracked(name) != new.tracked(name)
    ]


def _match_by_id(older: Sequence[Deliverable], newer: Sequence[Deliverable]) -> Dict[int, int]:
    by_id: Dict[str, List[int]] = {}
    for j, d in enumerate(newer):
        if d.id:
            by_id.setdefault(d.id, []).append(j)

    pairs: Dict[int, int] = {}
    claimed = set()
    for i, d in enumerate(older):
        if not d.id:
            continue
        for j in by_id.get(d.id, []):
            if j not in claimed:
                pairs[i] = j
                claimed.add(j)
                break
    return pairs


def title_matchable(d: Deliverable) -> bool:
    # placeholder and blank titles say nothing about identity
    return bool(d.title) and UNANNOUNCED not in d.title


def _pair_twins(older: Sequence[Deliverable], newer: Sequence[Deliverable],
                olds: List[int], news: List[int], pairs: Dict[int, int]) -> List[int]:
    """Pair items with identical tracked values; returns the unpaired older indices.

    Paired newer indices are removed from `news`.
    """
    rest_old = []
    for i in olds:
        twin = next((j for j in news if newer[j].tracked_values() == older[i].tracked_values()), None)
        if twin is None:
            rest_old.append(i)
        else:
            pairs[i] = twin
            news.remove(twin)
    return rest_old


def _match_by_title(older: Sequence[Deliverable], newer: Sequence[Deliverable],
                    old_left: List[int], new_left: List[int]
                    ) -> Tuple[Dict[int, int], List[AmbiguousMatch], Set[int], Set[int]]:
    old_groups: Dict[str, List[int]] = OrderedDict()
    new_groups: Dict[str, List[int]] = OrderedDict()
    for i in old_left:
        if title_matchable(older[i]):
            old_groups.setdefault(older[i].title, []).append(i)
    for j in new_left:
        if title_matchable(newer[j]):
            new_groups.setdefault(newer[j].title, []).append(j)

    pairs: Dict[int, int] = {}
    ambiguous: List[AmbiguousMatch] = []
    held_old: Set[int] = set()
    held_new: Set[int] = set()
    for title, olds in old_groups.items():
        news = list(new_groups.get(title, []))
        if not news:
            continue

        rest_old = _pair_twins(older, newer, olds, news, pairs)
        if len(rest_old) == 1 and len(news) == 1:
            pairs[rest_old[0]] = news[0]
        elif rest_old and news:
            ambiguous.append(AmbiguousMatch(
                title=title,
                older=[older[i] for i in rest_old],
                newer=[newer[j] for j in news],
            ))
            held_old.update(rest_old)
            held_new.update(news)

    # unmatchable titles only pair with an exact copy of themselves
    _pair_twins(
        older, newer,
        [i for i in old_left if not title_matchable(older[i])],
        [j for j in new_left if not title_matchable(newer[j])],
        pairs,
    )
    return pairs, ambiguous, held_old, held_new


def compute_changes(older: Snapshot, newer: Snapshot) -> ChangeSet:
    old_items, new_items = older.deliverables, newer.deliverables

    pairs = _match_by_id(old_items, new_items)
    matched_new = set(pairs.values())
    old_left = [i for i in range(len(old_items)) if i not in pairs]
    new_left = [j for j in range(len(new_items)) if j not in matched_new]

    title_pairs, ambiguous, held_old, held_new = _match_by_title(old_items, new_items, old_left, new_left)
    pairs.update(title_pairs)
    matched_new.update(title_pairs.values())

    changes = ChangeSet(older_day=older.day, newer_day=newer.day, ambiguous=ambiguous,
                        listed=len(new_items))
    for i, d in enumerate(old_items):
        if i in pairs:
            diffs = field_diffs(d, new_items[pairs[i]])
            if diffs:
                changes.updated.append(UpdatedDeliverable(d, new_items[pairs[i]], diffs))
            else:
                changes.unchanged_count += 1
        elif i not in held_old:
            changes.removed.append(d)

    changes.added = [
        d for j, d in enumerate(new_items)
        if j not in matched_new and j not in held_new
    ]
    return changes

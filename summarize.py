import datetime as dt
from typing import List, Optional

from models import ChangeSet, Outcome

NO_CHANGE_MESSAGE = "No changes have been detected since the last pull."
INSUFFICIENT_HISTORY_MESSAGE = (
    "Not enough roadmap snapshots are stored to compare yet; a report will be available after the next pull."
)


def human_date(value) -> str:
    if not value:
        return "TBD"
    if isinstance(value, str):
        value = dt.date.fromisoformat(value)
    return f"{value.day} {value.strftime('%B %Y')}"


def counts_sentence(changes: ChangeSet) -> str:
    sentence = (
        f"There were {len(changes.updated)} modifications, {len(changes.removed)} removals, "
        f"and {len(changes.added)} additions in this update."
    )
    if changes.ambiguous:
        sentence += f" {changes.ambiguous_count} deliverable(s) could not be matched unambiguously by title."
    return sentence


def build_tldr(changes: ChangeSet) -> List[str]:
    return [
        "# Progress Tracker Delta #  \n",
        f"### {changes.listed} deliverables listed | "
        f"{human_date(changes.older_day)} => {human_date(changes.newer_day)} ###  \n",
        counts_sentence(changes) + "  \n",
        "\n",
    ]


def outcome_message(outcome: Outcome, changes: Optional[ChangeSet] = None,
                    fetched: Optional[int] = None, elapsed_ms: Optional[int] = None) -> str:
    if outcome is Outcome.NO_CHANGE:
        return NO_CHANGE_MESSAGE
    if outcome is Outcome.INSUFFICIENT_HISTORY:
        return INSUFFICIENT_HISTORY_MESSAGE

    lines = []
    if fetched is not None:
        took = f" in {elapsed_ms} ms" if elapsed_ms is not None else ""
        lines.append(f"Roadmap retrieval returned {fetched} deliverables{took}.")
    if changes is not None:
        lines.append(counts_sentence(changes))
    return " ".join(lines)

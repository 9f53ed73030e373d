import os
import html
import json
import textwrap
import datetime as dt
from typing import Any, List

from diffing import display_title
from models import ChangeSet, Deliverable, UpdatedDeliverable
from summarize import build_tldr, human_date

WRAP_WIDTH = 100
LINE_BREAK = "  \n"
SECTION_END = "---  \n\n"


def _ensure_dir(path: str):
    if not os.path.exists(path):
        os.makedirs(path, exist_ok=True)


def _text(value) -> str:
    return html.unescape(str(value or "")).strip()


def wrap_text(text: str, width: int = WRAP_WIDTH) -> str:
    """Wrap each line at the last whitespace before `width`; words are never split.

    Lines end with a markdown hard break, which counts toward the width.
    """
    inner = width - len(LINE_BREAK.rstrip("\n"))
    lines: List[str] = []
    for line in text.splitlines() or [""]:
        lines.extend(textwrap.wrap(line, width=inner, break_long_words=False,
                                   break_on_hyphens=False) or [""])
    return LINE_BREAK.join(lines) + LINE_BREAK


def _date_range(d: Deliverable) -> str:
    return f"{human_date(d.start_date)} => {human_date(d.end_date)}"


def _render_removed(d: Deliverable) -> List[str]:
    return [
        f"### **{_text(display_title(d))}** ###  \n",
        f"*Last scheduled from {human_date(d.start_date)} to {human_date(d.end_date)}*  \n",
        wrap_text(_text(d.description)),
        "\n",
    ]


def _render_added(d: Deliverable) -> List[str]:
    return [
        f"### **{_text(display_title(d))}** ###  \n",
        f"*{_date_range(d)}*  \n",
        wrap_text(_text(d.description)),
        "\n",
    ]


def _render_field(field: str, old, new) -> str:
    if field == "endDate":
        return wrap_text(f"* End date has shifted from {human_date(old)} to {human_date(new)}")
    if field == "title":
        return wrap_text(f'* Title has been updated from "{_text(old)}" to "{_text(new)}"')
    return wrap_text(f'* Description has been updated from\n"{_text(old)}"\nto\n"{_text(new)}"')


def _render_updated(u: UpdatedDeliverable) -> List[str]:
    lines = [
        f"### **{_text(display_title(u.old))}** ###  \n",
        f"*{_date_range(u.new)}*  \n",
    ]
    lines += [_render_field(fd.field, fd.old_value, fd.new_value) for fd in u.field_diffs]
    if u.old.card and not u.new.card:
        lines.append("#### Removed from release roadmap! ####  \n  \n")
    lines.append("\n")
    return lines


def render(changes: ChangeSet) -> str:
    lines = build_tldr(changes)

    lines.append(f"## [{len(changes.removed)}] deliverable(s) *removed*: ##  \n")
    for d in changes.removed:
        lines += _render_removed(d)
    lines.append(SECTION_END)

    lines.append(f"## [{len(changes.added)}] deliverable(s) *added*: ##  \n")
    for d in changes.added:
        lines += _render_added(d)
    lines.append(SECTION_END)

    lines.append(f"## [{len(changes.updated)}] deliverable(s) *updated*: ##  \n")
    for u in changes.updated:
        lines += _render_updated(u)
    lines.append(f"## [{changes.unchanged_count}] deliverable(s) *unchanged* ##  \n\n")

    if changes.ambiguous:
        lines.append(SECTION_END)
        lines.append(f"## [{changes.ambiguous_count}] deliverable(s) with *ambiguous* title matches ##  \n")
        for a in changes.ambiguous:
            lines.append(wrap_text(
                f"* **{_text(a.title)}**: {len(a.older)} earlier and {len(a.newer)} current entries share this title"
            ))
        lines.append("\n")

    return "".join(lines)


def report_filename(day: dt.date) -> str:
    return f"{day.isoformat()}-Progress-Tracker-Delta.md"


def write_markdown(report_text: str, filename: str, out_dir: str = "reports") -> str:
    _ensure_dir(out_dir)
    path = os.path.join(out_dir, filename)
    with open(path, "w", encoding="utf-8") as f:
        f.write(report_text)
    return path


def snapshot_filename(day: dt.date) -> str:
    return f"{day.isoformat()}.json"


def write_json(data: Any, filename: str, out_dir: str = "reports") -> str:
    _ensure_dir(out_dir)
    path = os.path.join(out_dir, filename)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    return path

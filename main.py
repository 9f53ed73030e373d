import argparse
import datetime as dt
from dotenv import load_dotenv

from config import load_settings
from errors import ConfigError, FetchError, RoadmapError
from exporter import write_markdown
from models import Category, DeliverableFilter, Outcome, Project, SortBy
from pipeline import PipelineResult, RunContext, compare_days, export_snapshots, refresh_and_compare


def _parse_day(value: str) -> dt.date:
    try:
        return dt.datetime.strptime(value.replace("-", ""), "%Y%m%d").date()
    except ValueError as e:
        raise ConfigError(f"Invalid date {value!r}, use YYYYMMDD") from e


def _report(result: PipelineResult, export_dir: str) -> None:
    print("\n✅ Roadmap Watcher\n" + "=" * 32 + "\n")
    print(result.message)
    if result.outcome is Outcome.CHANGED and result.report:
        print("📤 Writing Markdown report...")
        path = write_markdown(result.report, result.filename, export_dir)
        print(f"\n(Markdown: {path})")


def run_pull(args, settings) -> None:
    ctx = RunContext.create(settings)
    try:
        print("🔍 Retrieving roadmap state...")
        result = refresh_and_compare(
            ctx,
            filters=[DeliverableFilter(f) for f in args.filter or []],
            sort_by=SortBy[args.sort.upper()],
            project_slugs=[Project[p.upper()].value for p in args.project or []],
            category_ids=[Category[c.upper().replace("-", "_")].value for c in args.category or []],
        )
    finally:
        ctx.close()
    _report(result, settings.export_dir)


def run_compare(args, settings) -> None:
    ctx = RunContext.create(settings)
    try:
        print("🧮 Calculating differences between roadmaps...")
        result = compare_days(
            ctx,
            start=_parse_day(args.start) if args.start else None,
            end=_parse_day(args.end) if args.end else None,
        )
    finally:
        ctx.close()
    _report(result, settings.export_dir)


def run_export(args, settings) -> None:
    ctx = RunContext.create(settings)
    try:
        print("📦 Exporting stored roadmap snapshots...")
        paths = export_snapshots(ctx, day=_parse_day(args.time) if args.time else None, all_days=args.all)
    finally:
        ctx.close()
    if not paths:
        print("No roadmap snapshot is stored for that day yet.")
        return
    print(f"📤 Export complete ({len(paths)} file(s))")
    for path in paths:
        print(f"  {path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Keeps track of roadmap changes from pull to pull.")
    parser.add_argument("--config", help="path to roadmap.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    pull = sub.add_parser("pull", help="pull the roadmap and store today's snapshot")
    pull.add_argument("--filter", action="append", choices=[f.value for f in DeliverableFilter])
    pull.add_argument("--sort", default="alphabetical", choices=[s.value.lower() for s in SortBy])
    pull.add_argument("--project", action="append", choices=[p.name.lower() for p in Project])
    pull.add_argument("--category", action="append",
                      choices=[c.name.lower().replace("_", "-") for c in Category])
    pull.set_defaults(func=run_pull)

    compare = sub.add_parser("compare", help="compare stored snapshots (most recent two by default)")
    compare.add_argument("-s", "--start", help="YYYYMMDD")
    compare.add_argument("-e", "--end", help="YYYYMMDD")
    compare.set_defaults(func=run_compare)

    export = sub.add_parser("export", help="write stored snapshots as JSON (latest by default)")
    which = export.add_mutually_exclusive_group()
    which.add_argument("-t", "--time", help="YYYYMMDD")
    which.add_argument("--all", action="store_true", help="export every stored day")
    export.set_defaults(func=run_export)
    return parser


def main(argv=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.config)
        args.func(args, settings)
    except FetchError as e:
        print(f"⚠️ Roadmap retrieval failed {e.describe()}; please try again later.")
        return 1
    except RoadmapError as e:
        print(f"⚠️ {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

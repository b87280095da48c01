"""
zurabase-planner: command-line access to planner boards.

    zurabase-planner templates
    zurabase-planner show 42
    zurabase-planner export 42 -o board.md
    zurabase-planner import board.md --template kanban-1 [--remote]
    zurabase-planner new "Sprint 12" --template scrum-1
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import PlannerConfig
from .engine import PlannerEngine
from .errors import PlannerError
from .ordering import lane_groups
from .schema import Planner

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def render_planner(planner: Planner, default_color: str = "") -> str:
    """Plain-text board view. Split groups are bracketed."""
    lines = [f"{planner.title}  ({planner.id})"]
    if planner.description:
        lines.append(f"  {planner.description}")
    for members in lane_groups(planner):
        grouped = len(members) > 1
        for i, lane in enumerate(members):
            mark = ""
            if grouped:
                mark = "┌ " if i == 0 else ("└ " if i == len(members) - 1 else "│ ")
            color = lane.color or default_color
            lines.append(f"{mark}[{lane.position}] {lane.title} <{color}> ({len(lane.cards)})")
            for card in lane.cards:
                lines.append(f"{'│ ' if grouped else ''}    {card.position}. {card.title}")
    return "\n".join(lines)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Subcommands
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def cmd_templates(engine: PlannerEngine, args) -> int:
    templates = engine.load_templates()
    if engine.errors:
        return 1
    if not templates:
        print("No templates.")
    for t in templates:
        lanes = ", ".join(lane.name for lane in t.lanes)
        print(f"{t.id}  {t.name} [{t.type.value}]  {lanes}")
    return 0


def cmd_show(engine: PlannerEngine, args) -> int:
    planner = engine.open(args.planner_id)
    print(render_planner(planner, engine.config.default_lane_color))
    return 0


def cmd_export(engine: PlannerEngine, args) -> int:
    engine.open(args.planner_id)
    text = engine.export_markdown(remote=args.remote)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Wrote {args.output}")
    else:
        sys.stdout.write(text)
    return 0


def cmd_import(engine: PlannerEngine, args) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    planner = engine.import_markdown(text, args.template, remote=args.remote)
    print(render_planner(planner, engine.config.default_lane_color))
    return 0


def cmd_new(engine: PlannerEngine, args) -> int:
    planner = engine.create(args.template, args.title, args.description)
    print(render_planner(planner, engine.config.default_lane_color))
    if planner.is_temporary:
        print("\nPlanner was not saved to the backend (kept locally only).")
        return 1
    return 0


COMMAND_TABLE = {
    "templates": cmd_templates,
    "show": cmd_show,
    "export": cmd_export,
    "import": cmd_import,
    "new": cmd_new,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="zurabase-planner",
        description="Planner boards: list templates, show, export and import",
    )
    ap.add_argument("--config", default=None, help="Path to planner.yaml")
    ap.add_argument("--api", default=None, help="API endpoint (overrides config/env)")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("templates", help="List planner templates")

    p = sub.add_parser("show", help="Print a planner")
    p.add_argument("planner_id")

    p = sub.add_parser("export", help="Export a planner as markdown")
    p.add_argument("planner_id")
    p.add_argument("-o", "--output", default=None, help="Write to file instead of stdout")
    p.add_argument("--remote", action="store_true", help="Use the backend exporter")

    p = sub.add_parser("import", help="Import a markdown planner")
    p.add_argument("file")
    p.add_argument("--template", default="", help="Template id for the new planner")
    p.add_argument("--remote", action="store_true", help="Let the backend create the planner")

    p = sub.add_parser("new", help="Create a planner from a template")
    p.add_argument("title")
    p.add_argument("--template", required=True, help="Template id")
    p.add_argument("--description", default="")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    cfg = PlannerConfig.load(args.config)
    if args.api:
        cfg.api_base = args.api.rstrip("/")
    setup_logging(cfg.log_level)

    try:
        engine = PlannerEngine.from_config(cfg)
        return COMMAND_TABLE[args.command](engine, args)
    except PlannerError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

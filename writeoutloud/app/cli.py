from __future__ import annotations

"""CLI for WriteOutLoud: browse characters, inspect config, replay sessions."""

import argparse
import sys

import yaml

from ..config.config import load_config, validate_config
from ..content.characters import get_character, list_characters
from ..stats.stats import format_summary, session_payload, write_stats
from .events import EVENT_DROPPED, STROKE_REJECTED, STROKE_SCORED, DroppedEvent, EventBus, StrokeOutcome, StrokeRejected
from .replay import load_script, run_replay


def _print_outcome(o: StrokeOutcome) -> None:
    r = o.result
    print(f"Stroke {r.index + 1} ({r.name}): {r.shape_accuracy:.1f} [{o.color.value}]")
    print(f"  {o.feedback.shape_message}")
    print(f"  {o.feedback.naming_message}")
    if o.feedback.timing_message:
        print(f"  {o.feedback.timing_message}")


def _print_rejected(e: StrokeRejected) -> None:
    print(f"Stroke {e.index + 1} rejected ({e.reason}); draw it again.")


def _print_dropped(d: DroppedEvent) -> None:
    where = f"stroke {d.index + 1}" if d.index is not None else "open stroke"
    print(f"Dropped {d.kind} for {where}: {d.reason}")


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="writeoutloud")
    sub = p.add_subparsers(dest="cmd", required=True)

    lc = sub.add_parser("list-characters")
    lc.add_argument("--config", default=None)

    sc = sub.add_parser("show-config")
    sc.add_argument("--config", default=None)

    rp = sub.add_parser("replay")
    rp.add_argument("--script", required=True, help="YAML event script")
    rp.add_argument("--config", default=None)
    rp.add_argument("--character", default=None, help="Character id or glyph (overrides the script)")
    rp.add_argument("--explain", action="store_true")
    rp.add_argument("--json", dest="json_out", default=None, help="Write session stats JSON here")

    args = p.parse_args(argv)
    cfg = validate_config(load_config(args.config))
    chars_path = cfg["content"].get("characters_path")

    if args.cmd == "list-characters":
        for c in list_characters(chars_path):
            print(f"{c['id']}: {c['glyph']} ({c['pinyin']}) {c['meaning']} | strokes: {c['strokes']}")
        return 0

    if args.cmd == "show-config":
        print(yaml.safe_dump(cfg, sort_keys=False, allow_unicode=True), end="")
        return 0

    if args.cmd == "replay":
        if args.explain or bool(cfg.get("explain", False)):
            from .explain import enable as explain_enable
            explain_enable(True)
        try:
            script = load_script(args.script)
        except FileNotFoundError:
            print(f"ERROR: Script not found: {args.script}", file=sys.stderr)
            return 1
        except ValueError as e:
            print(f"ERROR: Invalid script {args.script}: {e}", file=sys.stderr)
            return 2
        char_id = args.character or script.character
        if not char_id:
            print("ERROR: No character given (use --character or 'character:' in the script).", file=sys.stderr)
            return 2
        try:
            character = get_character(char_id, chars_path)
        except KeyError as e:
            print(f"ERROR: {e.args[0]}", file=sys.stderr)
            return 2

        bus = EventBus()
        bus.subscribe(STROKE_SCORED, _print_outcome)
        bus.subscribe(STROKE_REJECTED, _print_rejected)
        if args.explain:
            bus.subscribe(EVENT_DROPPED, _print_dropped)

        print(f"Character {character.glyph} ({character.pinyin}), {character.stroke_count} strokes")
        report = run_replay(script, character, cfg, bus=bus)

        print("\nSession Summary:")
        print(format_summary(report.score, report.results))

        if args.json_out:
            payload = session_payload(
                report.score,
                report.results,
                feedback={o.result.index: o.feedback for o in report.outcomes},
                colors={o.result.index: o.color for o in report.outcomes},
            )
            payload["character"] = character.id
            write_stats(payload, args.json_out)
            print(f"Stats written to {args.json_out}")
        return 0

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

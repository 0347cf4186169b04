import argparse
import json
from datetime import timedelta
from pathlib import Path

from pipelines.versioning.change_analysis import analyze_change, apply_change
from pipelines.versioning.change_classifier import (
    InvalidConfiguration,
    Thresholds,
    evaluate,
    split_lines,
)

from . import __version__
from . import env
from .directory import ArtifactDirectory, InvalidRecord, RecordNotFound
from .events import WebhookSubscriber
from .logger import get_logger
from .schema import AGENT_MODES, ARTIFACT_TYPES, DEFAULT_SESSION_CONFIG, SESSION_STATUSES


def _read_text(path_str: str) -> str:
    path = Path(path_str)
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    return path.read_text(encoding="utf-8")


def _open_directory(args: argparse.Namespace) -> ArtifactDirectory:
    directory = ArtifactDirectory(Path(args.db))
    url = getattr(args, "webhook", None) or env.webhook_url()
    if url:
        directory.bus.subscribe(WebhookSubscriber(url))
    return directory


def _window(args: argparse.Namespace) -> timedelta:
    minutes = args.window_minutes if args.window_minutes is not None else env.update_window_minutes()
    if minutes < 0:
        raise SystemExit("--window-minutes must be >= 0")
    return timedelta(minutes=minutes)


def _print_classification(result, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
        return
    print(f"Decision: {result.decision}")
    print(f"Lines changed: {result.stats.lines_changed}")
    print(f"Locations changed: {result.stats.locations_changed}")
    print(f"Iterations: {result.current_iterations}/{result.max_iterations}")
    print(f"Reasoning: {result.rationale}")


def cmd_evaluate(args: argparse.Namespace) -> None:
    before = split_lines(_read_text(args.before)) if args.before else []
    after = split_lines(_read_text(args.after))
    thresholds = Thresholds(
        max_lines_for_update=args.max_lines,
        max_locations_for_update=args.max_locations,
        max_iterations_per_update=args.max_iterations,
    )
    try:
        result = evaluate(before, after, thresholds, args.recent)
    except InvalidConfiguration as e:
        raise SystemExit(f"Invalid configuration: {e}")
    get_logger().record_evaluation(result.decision, result.violations)
    _print_classification(result, args.json)


def cmd_init_db(args: argparse.Namespace) -> None:
    ArtifactDirectory(Path(args.db))
    print(f"Database ready: {args.db}")


def cmd_session_create(args: argparse.Namespace) -> None:
    config = {}
    if args.max_lines is not None:
        config["max_lines_for_update"] = args.max_lines
    if args.max_locations is not None:
        config["max_locations_for_update"] = args.max_locations
    if args.max_iterations is not None:
        config["max_iterations_per_update"] = args.max_iterations
    try:
        session = _open_directory(args).create_session(args.name, args.description or "", config=config)
    except InvalidRecord as e:
        raise SystemExit(f"Invalid session: {e}")
    print(f"Session: {session['id']}")


def cmd_sessions(args: argparse.Namespace) -> None:
    sessions = _open_directory(args).list_sessions()
    if not sessions:
        print("No sessions.")
        return
    for s in sessions:
        print(f"{s['id']}  [{s['status']}/{s['current_mode']}]  {s['name']}")


def cmd_set_mode(args: argparse.Namespace) -> None:
    session = _open_directory(args).set_mode(args.session, args.mode)
    if session is None:
        raise SystemExit(f"Session not found: {args.session}")
    print(f"Mode: {session['current_mode']}")


def cmd_set_status(args: argparse.Namespace) -> None:
    session = _open_directory(args).set_status(args.session, args.status)
    if session is None:
        raise SystemExit(f"Session not found: {args.session}")
    print(f"Status: {session['status']}")


def cmd_artifact_create(args: argparse.Namespace) -> None:
    content = _read_text(args.input)
    try:
        artifact = _open_directory(args).create_artifact(
            args.session, args.name, args.type, args.path, content
        )
    except (InvalidRecord, RecordNotFound) as e:
        raise SystemExit(str(e))
    print(f"Artifact: {artifact['id']}")
    print(f"Lines: {artifact['line_count']}  Promoted: {artifact['is_promoted']}")


def cmd_artifacts(args: argparse.Namespace) -> None:
    artifacts = _open_directory(args).list_artifacts(args.session)
    if not artifacts:
        print("No artifacts.")
        return
    for a in artifacts:
        print(f"{a['id']}  v{a['version']}  {a['path']}  ({a['line_count']} lines)")


def cmd_versions(args: argparse.Namespace) -> None:
    versions = _open_directory(args).artifact_versions(args.artifact)
    if not versions:
        print("No versions.")
        return
    for v in versions:
        print(f"v{v['version']}  {v['decision_type']:<8} {v['line_count']} lines  {v['timestamp']}")


def cmd_analyze(args: argparse.Namespace) -> None:
    directory = _open_directory(args)
    try:
        result = analyze_change(directory, args.artifact, _read_text(args.input), window=_window(args))
    except (RecordNotFound, InvalidConfiguration) as e:
        raise SystemExit(str(e))
    _print_classification(result, args.json)


def cmd_apply(args: argparse.Namespace) -> None:
    directory = _open_directory(args)
    try:
        decision, artifact = apply_change(
            directory,
            args.artifact,
            _read_text(args.input),
            window=_window(args),
            mode=args.mode,
        )
    except (RecordNotFound, InvalidConfiguration, InvalidRecord) as e:
        raise SystemExit(str(e))
    print(f"Decision: {decision['type']} (iteration {decision['iteration_number']})")
    print(f"Reasoning: {decision['reasoning']}")
    print(f"Artifact: {artifact['id']} now v{artifact['version']}")


def cmd_decisions(args: argparse.Namespace) -> None:
    decisions = _open_directory(args).list_decisions(args.session)
    if not decisions:
        print("No decisions.")
        return
    for d in decisions:
        print(f"{d['timestamp']}  {d['type']:<8} {d['artifact_id']}  {d['diff_summary']}")
        print(f"  {d['reasoning']}")


def cmd_tool_call(args: argparse.Namespace) -> None:
    parameters = {}
    if args.params:
        try:
            parameters = json.loads(args.params)
        except json.JSONDecodeError as e:
            raise SystemExit(f"--params must be JSON: {e}")
    try:
        tool_call = _open_directory(args).create_tool_call(
            args.session, args.name, args.description or "", parameters
        )
    except (InvalidRecord, RecordNotFound) as e:
        raise SystemExit(str(e))
    print(f"Tool call: {tool_call['id']} ({tool_call['mode']})")


def cmd_metrics(args: argparse.Namespace) -> None:
    try:
        metrics = _open_directory(args).session_metrics(args.session)
    except RecordNotFound as e:
        raise SystemExit(str(e))
    if args.json:
        print(json.dumps(metrics, indent=2))
        return
    for key, value in metrics.items():
        print(f"{key}: {value}")


def build_parser() -> argparse.ArgumentParser:
    default_db = str(env.db_path())
    parser = argparse.ArgumentParser(prog="devmonitor", description="Monitor long-running AI coding sessions")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", default=default_db, help=f"Path to SQLite database (default: {default_db})")
    parser.add_argument("--webhook", help="POST every event to this URL (or set DEVMONITOR_WEBHOOK_URL)")

    subparsers = parser.add_subparsers(dest="command")

    ev = subparsers.add_parser("evaluate", help="Classify a change between two files without touching the database")
    ev.add_argument("--before", help="Prior content (omit for a new file)")
    ev.add_argument("--after", required=True, help="Proposed content")
    ev.add_argument("--max-lines", type=int, default=DEFAULT_SESSION_CONFIG["max_lines_for_update"])
    ev.add_argument("--max-locations", type=int, default=DEFAULT_SESSION_CONFIG["max_locations_for_update"])
    ev.add_argument("--max-iterations", type=int, default=DEFAULT_SESSION_CONFIG["max_iterations_per_update"])
    ev.add_argument("--recent", type=int, default=0, help="Recent update decisions on this artifact")
    ev.add_argument("--json", action="store_true", help="Print the result as JSON")
    ev.set_defaults(func=cmd_evaluate)

    ini = subparsers.add_parser("init-db", help="Create the database tables")
    ini.set_defaults(func=cmd_init_db)

    sc = subparsers.add_parser("session-create", help="Start a monitoring session")
    sc.add_argument("--name", required=True)
    sc.add_argument("--description")
    sc.add_argument("--max-lines", type=int, help="Override max lines for an update")
    sc.add_argument("--max-locations", type=int, help="Override max locations for an update")
    sc.add_argument("--max-iterations", type=int, help="Override max update iterations")
    sc.set_defaults(func=cmd_session_create)

    ls = subparsers.add_parser("sessions", help="List sessions, most recently active first")
    ls.set_defaults(func=cmd_sessions)

    sm = subparsers.add_parser("set-mode", help="Tag a session with its current operating mode")
    sm.add_argument("--session", required=True)
    sm.add_argument("--mode", required=True, choices=AGENT_MODES)
    sm.set_defaults(func=cmd_set_mode)

    ss = subparsers.add_parser("set-status", help="Change a session's status")
    ss.add_argument("--session", required=True)
    ss.add_argument("--status", required=True, choices=SESSION_STATUSES)
    ss.set_defaults(func=cmd_set_status)

    ac = subparsers.add_parser("artifact-create", help="Register a new artifact from a file")
    ac.add_argument("--session", required=True)
    ac.add_argument("--name", required=True)
    ac.add_argument("--type", required=True, choices=ARTIFACT_TYPES)
    ac.add_argument("--path", required=True, help="Virtual file path of the artifact")
    ac.add_argument("--input", required=True, help="File with the artifact content")
    ac.set_defaults(func=cmd_artifact_create)

    al = subparsers.add_parser("artifacts", help="List a session's artifacts")
    al.add_argument("--session", required=True)
    al.set_defaults(func=cmd_artifacts)

    vl = subparsers.add_parser("versions", help="Show an artifact's version history")
    vl.add_argument("--artifact", required=True)
    vl.set_defaults(func=cmd_versions)

    an = subparsers.add_parser("analyze", help="Recommend update or rewrite for new artifact content")
    an.add_argument("--artifact", required=True)
    an.add_argument("--input", required=True, help="File with the proposed content")
    an.add_argument("--window-minutes", type=int, help="Trailing window for recent updates (default: 60)")
    an.add_argument("--json", action="store_true", help="Print the result as JSON")
    an.set_defaults(func=cmd_analyze)

    ap = subparsers.add_parser("apply", help="Classify, record the decision and write new artifact content")
    ap.add_argument("--artifact", required=True)
    ap.add_argument("--input", required=True, help="File with the new content")
    ap.add_argument("--window-minutes", type=int, help="Trailing window for recent updates (default: 60)")
    ap.add_argument("--mode", choices=AGENT_MODES, help="Mode tag for the decision (default: session mode)")
    ap.set_defaults(func=cmd_apply)

    dl = subparsers.add_parser("decisions", help="List a session's decisions, newest first")
    dl.add_argument("--session", required=True)
    dl.set_defaults(func=cmd_decisions)

    tc = subparsers.add_parser("tool-call", help="Record a tool call")
    tc.add_argument("--session", required=True)
    tc.add_argument("--name", required=True)
    tc.add_argument("--description")
    tc.add_argument("--params", help="JSON object of tool parameters")
    tc.set_defaults(func=cmd_tool_call)

    mt = subparsers.add_parser("metrics", help="Show a session's aggregate metrics")
    mt.add_argument("--session", required=True)
    mt.add_argument("--json", action="store_true")
    mt.set_defaults(func=cmd_metrics)

    return parser


def main(argv=None):
    # Load .env if present (DEVMONITOR_DB, DEVMONITOR_WEBHOOK_URL, etc.)
    env.load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    get_logger(level=env.log_level())

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()

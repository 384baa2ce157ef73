"""IELTS Mock Test Engine - Command Line Interface"""

import argparse
import sys
import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s: %(message)s'
)


def cmd_validate(args):
    """Check tests.json / questions.json for inconsistencies"""
    from storage.json_storage import TestRepository

    repo = TestRepository()
    report = repo.validate()

    if not report:
        print(f"❌ No tests found in {repo.tests_file}")
        return 1

    print("\n📋 TEST DATA VALIDATION")
    print("="*50)

    failures = 0
    for entry in report:
        mark = "✅" if entry["ok"] else "⚠️ "
        print(f"\n{mark} {entry['test_id']}: {entry['title']}")
        for s in entry["sections"]:
            declared = s["declared"] or "-"
            print(f"   {s['id']}: {s['actual']} questions (declared {declared}), "
                  f"{s['duration_seconds'] // 60} min")
        if entry["unknown_sections"]:
            print(f"   Unknown section: {', '.join(entry['unknown_sections'])}")
        if entry["bad_types"]:
            print(f"   Unknown type: {', '.join(entry['bad_types'])}")
        if not entry["ok"]:
            failures += 1

    return 1 if failures else 0


def cmd_sessions(args):
    """List in-progress sessions for a user"""
    from engine.timer import format_time
    from storage.session_store import JsonSessionStore

    store = JsonSessionStore(args.user)
    test_ids = store.list_test_ids()

    if not test_ids:
        print(f"No sessions in progress for {args.user}")
        return 0

    print(f"\n⏳ SESSIONS IN PROGRESS ({args.user})")
    print("="*50)
    for test_id in test_ids:
        state = store.load(test_id)
        if state is None:
            continue
        section, question = state.cursor
        print(f"\n{test_id}: section {section + 1}, question {question + 1}, "
              f"{len(state.answers)} answered, started {state.started_at:%Y-%m-%d %H:%M}")
        for section_id, seconds in state.remaining_seconds.items():
            print(f"   {section_id}: {format_time(seconds)} left")
    return 0


def cmd_discard(args):
    """Delete an in-progress session"""
    from storage.session_store import JsonSessionStore

    store = JsonSessionStore(args.user)
    if store.load(args.test) is None:
        print(f"❌ No session for {args.user} / {args.test}")
        return 1

    store.clear(args.test)
    print(f"✅ Discarded session {args.user} / {args.test}")
    return 0


def cmd_results(args):
    """Show submitted results for a user"""
    from engine.analysis_engine import band_label
    from storage.json_storage import ResultStorage

    results = ResultStorage().list_user_results(args.user)
    if not results:
        print(f"No results for {args.user}")
        return 0

    print(f"\n📊 RESULTS ({args.user})")
    print("="*50)
    for record in results:
        flag = " (auto-submitted)" if record.get("autoSubmitted") else ""
        print(f"\n{record['testId']} - completed {record.get('completedAt', '?')}{flag}")
        overall = (record.get("scores") or {}).get("overall")
        if overall is not None:
            print(f"   Overall band: {overall} ({band_label(overall)})")
        for section_id, s in record.get("sectionResults", {}).items():
            graded = (f"{s['correctAnswers']}/{s['gradableQuestions']} correct, "
                      if s.get("gradableQuestions") else "")
            print(f"   {section_id}: {graded}{s['answered']}/{s['totalQuestions']} answered, "
                  f"{s['timeSpent']} min")
    return 0


def cmd_serve(args):
    """Start web interface"""
    import subprocess

    print("🚀 Starting IELTS Mock Test...")
    print(f"   Open http://localhost:{args.port} in your browser")

    return subprocess.run([
        sys.executable, "-m", "streamlit", "run",
        "ui/app.py",
        "--server.port", str(args.port)
    ]).returncode


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="IELTS Mock Test Engine")
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Check test data files')
    validate_parser.set_defaults(func=cmd_validate)

    # Sessions command
    sessions_parser = subparsers.add_parser('sessions', help='List sessions in progress')
    sessions_parser.add_argument('--user', '-u', required=True, help='Student ID')
    sessions_parser.set_defaults(func=cmd_sessions)

    # Discard command
    discard_parser = subparsers.add_parser('discard', help='Delete a session in progress')
    discard_parser.add_argument('--user', '-u', required=True, help='Student ID')
    discard_parser.add_argument('--test', '-t', required=True, help='Test ID')
    discard_parser.set_defaults(func=cmd_discard)

    # Results command
    results_parser = subparsers.add_parser('results', help='Show submitted results')
    results_parser.add_argument('--user', '-u', required=True, help='Student ID')
    results_parser.set_defaults(func=cmd_results)

    # Serve command
    serve_parser = subparsers.add_parser('serve', help='Start web UI')
    serve_parser.add_argument('--port', type=int, default=8501)
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command:
        try:
            return args.func(args)
        except ValueError as e:
            print(f"❌ {e}")
            return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())

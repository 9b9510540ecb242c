import argparse
import datetime
import json
import logging
import shutil
import time
from dataclasses import asdict

import requests

from config import YamlConfig
from rest_api import EngineAPI, _summary_dict


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def benchmark(url: str, runs: int = 10) -> None:
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        requests.get(f"{url}/health", timeout=5)
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def demo_session(db_path: str, yaml_path: str, user_id: str = "demo") -> int:
    """Run a short bench press session end to end and print its summary."""
    api = EngineAPI(db_path=db_path, yaml_path=yaml_path)
    started = datetime.datetime.now() - datetime.timedelta(minutes=20)
    sid = api.sessions.create(
        user_id, "push_day", planned_sets=3, planned_duration_seconds=1800, started_at=started
    )
    for set_no, (reps, rpe) in enumerate([(5, 7), (5, 8), (5, 8)], start=1):
        api.sets.add(
            sid,
            "bench_press",
            5,
            reps,
            100.0,
            rpe,
            planned_rest_seconds=120,
            rest_seconds=120 if set_no > 1 else None,
            form_quality=4,
            logged_at=started + datetime.timedelta(minutes=5 * set_no),
        )
    api.sessions.complete(sid)
    summary = api.statistics.generate_session_summary(sid)
    unlocked = api.gamification.process_session(sid, summary.performance)
    data = _summary_dict(summary)
    data["new_achievements"] = [a.id for a in unlocked]
    _print_json(data)
    return sid


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Workout performance engine commands")
    parser.add_argument("--db", default="workout.db")
    parser.add_argument("--yaml", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    demo = sub.add_parser("demo")
    demo.add_argument("--user", default="demo")

    live = sub.add_parser("live")
    live.add_argument("session_id", type=int)

    summ = sub.add_parser("summary")
    summ.add_argument("session_id", type=int)

    rec = sub.add_parser("recommend")
    rec.add_argument("user_id")
    rec.add_argument("exercise_id")
    rec.add_argument("--reason", default="preference")

    streaks = sub.add_parser("streaks")
    streaks.add_argument("user_id")

    ach = sub.add_parser("achievements")
    ach.add_argument("user_id")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    serve = sub.add_parser("serve")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    settings = YamlConfig(args.yaml).settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "demo":
        demo_session(args.db, args.yaml, args.user)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "benchmark":
        benchmark(args.url, args.runs)
    elif args.cmd == "serve":
        import uvicorn

        uvicorn.run(EngineAPI(args.db, args.yaml).app, host=args.host, port=args.port)
    else:
        api = EngineAPI(db_path=args.db, yaml_path=args.yaml)
        if args.cmd == "live":
            _print_json(asdict(api.statistics.compute_live_stats(args.session_id)))
        elif args.cmd == "summary":
            _print_json(_summary_dict(api.statistics.generate_session_summary(args.session_id)))
        elif args.cmd == "recommend":
            _print_json(
                asdict(
                    api.recommendations.generate_recommendation(
                        args.user_id, args.exercise_id, args.reason
                    )
                )
            )
        elif args.cmd == "streaks":
            _print_json(asdict(api.gamification.user_streaks(args.user_id)))
        elif args.cmd == "achievements":
            _print_json(asdict(api.gamification.achievement_stats(args.user_id)))


if __name__ == "__main__":
    main()

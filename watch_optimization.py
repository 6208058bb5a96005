import argparse

from backend.app import create_app
from backend.app.database import db
from backend.app.models.optimization import Optimization


def watch_optimization(optimization_id: int, max_polls: int | None = None, interval: float | None = None) -> None:
    """Block until the optimization's job finishes, then record the outcome.

    Worker-side counterpart of the background poller: useful from a shell or
    a cron job when the web process was restarted mid-run.
    """
    app = create_app({'STATUS_POLLING_ENABLED': False})
    with app.app_context():
        services = app.extensions['optimization_services']
        orchestrator = services['orchestrator']

        optimization = db.session.get(Optimization, optimization_id)
        if optimization is None:
            raise SystemExit(f"Optimization {optimization_id} not found")

        handle = orchestrator.run_handle(optimization)
        final = services['job_runner'].await_completion(
            handle,
            max_polls=max_polls or app.config['MAX_STATUS_CHECKS'],
            interval_seconds=interval or app.config['STATUS_CHECK_INTERVAL'],
        )
        print(f"Run {handle} finished with state '{final['state']}'")

        orchestrator.check_status(optimization)
        print(f"Optimization {optimization_id} is now '{optimization.status}'")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Wait for an optimization run and ingest its results")
    parser.add_argument("optimization_id", type=int)
    parser.add_argument("--max-polls", type=int, default=None)
    parser.add_argument("--interval", type=float, default=None)
    args = parser.parse_args()
    watch_optimization(args.optimization_id, args.max_polls, args.interval)

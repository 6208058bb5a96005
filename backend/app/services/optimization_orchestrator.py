"""
Optimization run orchestration.

Drives one optimization through ``pending → running → completed | failed |
cancelled``: inputs are validated and written as CSV files, uploaded to
object storage, a solver job is started, its status is polled and, once it
completes, the result files are downloaded and ingested.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ..database import db, delete_for_optimization
from ..errors import NotFoundError, PipelineError, StateError, ValidationError
from ..models.optimization import (
    Optimization,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
)
from ..models.project_input import ProjectInput, TYPE_COST, TYPE_REWARD
from ..models.balance_constraint import BalanceConstraint
from ..models.project_group import ProjectGroup
from .input_assembler import InputAssembler
from .job_runner_client import JobRunnerClient, STATE_CANCELED, STATE_COMPLETED, STATE_FAILED
from .object_store_client import ObjectStoreClient
from .results_processor import RESULT_FILES, RESULT_MODELS, ResultsProcessor

logger = logging.getLogger(__name__)

RUN_HANDLE_PREFIX = "Job started: "
_RUN_HANDLE_RE = re.compile(r"^Job started: (\S+)\s*$", re.MULTILINE)

INPUT_MODELS = (ProjectInput, BalanceConstraint, ProjectGroup)

# An error never moves an optimization out of these.
FINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)


def extract_run_handle(execution_log: Optional[str]) -> Optional[str]:
    """Return the most recent run handle recorded in *execution_log*."""
    if not execution_log:
        return None
    matches = _RUN_HANDLE_RE.findall(execution_log)
    return matches[-1] if matches else None


class OptimizationOrchestrator:
    """Top-level state machine for optimization runs.

    Attributes
    ----------
    object_store : ObjectStoreClient
        Where input files are uploaded and result files are read from.
    job_runner : JobRunnerClient
        Starts and polls the solver job.
    max_upload_workers : int
        Size of the thread pool used for the concurrent input uploads.
    """

    def __init__(
        self,
        object_store: ObjectStoreClient,
        job_runner: JobRunnerClient,
        assembler: Optional[InputAssembler] = None,
        processor: Optional[ResultsProcessor] = None,
        max_upload_workers: int = 5,
    ) -> None:
        self.object_store = object_store
        self.job_runner = job_runner
        self.assembler = assembler or InputAssembler()
        self.processor = processor or ResultsProcessor()
        self.max_upload_workers = max_upload_workers

    # ------------------------------------------------------------------
    #  Create
    # ------------------------------------------------------------------
    def create(self, data: Dict[str, Any], status: str = STATUS_PENDING) -> Optimization:
        """Persist an optimization and all of its input rows.

        *data* has the shape produced by ``OptimizationCreateSchema``.
        """
        params = data["parameters"]
        optimization = Optimization(
            description=params.get("description"),
            total_periods=params["total_periods"],
            discount_rate=params["discount_rate"],
            initial_balance=params["initial_balance"],
            nb_must_take_one=params.get("nb_must_take_one", 0),
            status=status,
        )
        db.session.add(optimization)
        try:
            db.session.flush()

            for cost in data.get("project_costs", []):
                db.session.add(ProjectInput(
                    optimization_id=optimization.id,
                    project_name=cost["project_name"],
                    period=cost["period"],
                    type=TYPE_COST,
                    amount=cost["amount"],
                ))
            for reward in data.get("project_rewards", []):
                db.session.add(ProjectInput(
                    optimization_id=optimization.id,
                    project_name=reward["project_name"],
                    period=reward["period"],
                    type=TYPE_REWARD,
                    amount=reward["amount"],
                ))
            for constraint in data.get("min_balances", []):
                db.session.add(BalanceConstraint(
                    optimization_id=optimization.id,
                    period=constraint["period"],
                    min_balance=constraint["min_balance"],
                ))
            for member in data.get("must_take_one", []):
                db.session.add(ProjectGroup(
                    optimization_id=optimization.id,
                    group_id=member["group_id"],
                    project_name=member["project_name"],
                ))
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ValidationError([f"Duplicate input entry: {exc.orig}"]) from exc

        logger.info(
            f"Created optimization {optimization.id} with "
            f"{len(data.get('project_costs', []))} cost and "
            f"{len(data.get('project_rewards', []))} reward entries"
        )
        return optimization

    # ------------------------------------------------------------------
    #  Submit
    # ------------------------------------------------------------------
    def submit(self, optimization: Optimization) -> Dict[str, Any]:
        """
        Validate, upload the input files and start the solver job.

        Raises
        ------
        StateError
            If the optimization is already running.
        ValidationError
            If the stored inputs are invalid; nothing is changed.
        """
        if optimization.is_running():
            raise StateError(f"Optimization {optimization.id} is already running")

        errors = self.assembler.validate(optimization)
        if errors:
            raise ValidationError(errors, optimization_id=optimization.id)

        try:
            files = self.assembler.build_files(optimization)
            uploaded = self._upload_all(files)

            job = self.job_runner.submit({
                "optimization_id": optimization.id,
                "files": list(files),
            })

            optimization.input_files = list(files)
            optimization.status = STATUS_RUNNING
            optimization.completed_at = None
            optimization.append_log(f"{RUN_HANDLE_PREFIX}{job['runtime_job_id']}")
            db.session.commit()
        except Exception as exc:
            self._mark_failed(optimization, exc)
            raise

        logger.info(f"Optimization {optimization.id} submitted as run {job['runtime_job_id']}")
        return {"job": job, "uploaded_files": uploaded}

    def _upload_all(self, files: Dict[str, str]) -> List[Dict[str, Any]]:
        """Upload every file concurrently; returns once all have succeeded."""
        with ThreadPoolExecutor(max_workers=self.max_upload_workers) as pool:
            futures = [
                pool.submit(self.object_store.upload, name, content, "text/csv")
                for name, content in files.items()
            ]
            return [future.result() for future in futures]

    # ------------------------------------------------------------------
    #  Status
    # ------------------------------------------------------------------
    def run_handle(self, optimization: Optimization) -> str:
        handle = extract_run_handle(optimization.execution_log)
        if handle is None:
            raise StateError(f"No run recorded for optimization {optimization.id}")
        return handle

    def check_status(self, optimization: Optimization) -> Dict[str, Any]:
        """
        Poll the solver job and move the optimization along.

        A completed job triggers result ingestion unless the optimization is
        already completed (or was cancelled), so repeated calls are safe.
        Concurrent callers (the poller and a status request) race for the
        transition in the database; only the winner downloads and ingests.
        Returns the poll result.
        """
        handle = self.run_handle(optimization)

        try:
            status = self.job_runner.poll_status(handle)
            state = status["state"]

            if state == STATE_COMPLETED and optimization.status not in FINAL_STATUSES:
                if self._claim(optimization, Optimization.status.notin_(FINAL_STATUSES),
                               completed_at=datetime.utcnow()):
                    self._collect_results(optimization)
                else:
                    logger.info(f"Results of optimization {optimization.id} are ingested by another worker")
            elif state == STATE_FAILED and optimization.is_running():
                if self._claim(optimization, Optimization.status == STATUS_RUNNING, status=STATUS_FAILED):
                    detail = f": {status['error_message']}" if status.get("error_message") else ""
                    optimization.append_log(f"Job failed{detail}")
                    db.session.commit()
                    logger.warning(f"Run {handle} of optimization {optimization.id} failed")
            elif state == STATE_CANCELED and optimization.is_running():
                if self._claim(optimization, Optimization.status == STATUS_RUNNING, status=STATUS_CANCELLED):
                    optimization.append_log("Job canceled by the job runner")
                    db.session.commit()
        except Exception as exc:
            self._mark_failed(optimization, exc)
            raise

        return status

    def _claim(self, optimization: Optimization, condition, **values) -> bool:
        """
        Apply *values* to the optimization's row only while *condition* holds.

        The conditional UPDATE is committed at once, so of several callers
        racing for the same transition exactly one gets ``True``. The
        instance is refreshed either way.
        """
        claimed = (
            Optimization.query
            .filter(Optimization.id == optimization.id, Optimization.completed_at.is_(None), condition)
            .update(values, synchronize_session=False)
        )
        db.session.commit()
        db.session.refresh(optimization)
        return claimed == 1

    def _collect_results(self, optimization: Optimization) -> None:
        csv_files = {}
        for name in RESULT_FILES:
            try:
                csv_files[name] = self.object_store.download(name)
            except NotFoundError:
                logger.warning(f"Result file {name} not found for optimization {optimization.id}")

        ingested = self.processor.ingest(optimization, csv_files)
        optimization.append_log(f"Job completed; ingested {', '.join(ingested)}")
        db.session.commit()
        logger.info(f"Optimization {optimization.id} completed with {len(ingested)} result files")

    # ------------------------------------------------------------------
    #  Cancel / delete / inspection
    # ------------------------------------------------------------------
    def cancel(self, optimization: Optimization) -> Optimization:
        """Mark a running optimization as cancelled; the remote job is left alone."""
        if not optimization.is_running():
            raise StateError(
                f"Only running optimizations can be cancelled (status is '{optimization.status}')"
            )
        optimization.status = STATUS_CANCELLED
        optimization.append_log(f"Cancelled at {datetime.utcnow().isoformat()}")
        db.session.commit()
        logger.info(f"Optimization {optimization.id} cancelled")
        return optimization

    def delete(self, optimization: Optimization) -> None:
        """Remove the optimization together with every input and result row."""
        delete_for_optimization(INPUT_MODELS + RESULT_MODELS, optimization.id)
        db.session.delete(optimization)
        db.session.commit()

    def logs(self, optimization: Optimization) -> Dict[str, Any]:
        job_logs = None
        handle = extract_run_handle(optimization.execution_log)
        if handle is not None:
            job_logs = self.job_runner.fetch_logs(handle)
        return {
            "execution_log": optimization.execution_log,
            "run_handle": handle,
            "job_logs": job_logs,
        }

    def preview(self, optimization: Optimization) -> Dict[str, Any]:
        return {
            "validation_errors": self.assembler.validate(optimization),
            "files": self.assembler.build_files(optimization),
        }

    # ------------------------------------------------------------------
    def _mark_failed(self, optimization: Optimization, exc: Exception) -> None:
        """Record *exc* as the failure of the current run, reading the status afresh."""
        db.session.rollback()
        db.session.refresh(optimization)
        level = logging.WARNING if isinstance(exc, PipelineError) else logging.ERROR

        if optimization.status in FINAL_STATUSES:
            logger.log(level, f"Optimization {optimization.id} stays '{optimization.status}' after error: {exc}")
            return

        optimization.status = STATUS_FAILED
        # Release a pending ingestion claim so a later check can retry.
        optimization.completed_at = None
        optimization.append_log(f"Error: {exc}")
        db.session.commit()
        logger.log(level, f"Optimization {optimization.id} failed: {exc}")

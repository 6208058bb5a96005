import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Mapping, Optional, Union

import pandas as pd

from ..database import db, delete_for_optimization
from ..errors import IngestionError
from ..models.optimization import Optimization, STATUS_COMPLETED
from ..models.optimization_result import OptimizationResult, SelectedProject
from ..models.period_results import PeriodBalance, PeriodCashFlow
from . import csv_codec

logger = logging.getLogger(__name__)

SOLUTION_RESULTS_FILE = 'SolutionResults.csv'
SELECTED_PROJECTS_FILE = 'SelectedProjectsOutput.csv'
BALANCE_RESULTS_FILE = 'BalanceResults.csv'
CASH_FLOW_RESULTS_FILE = 'CashFlowResults.csv'

RESULT_FILES = (
    SOLUTION_RESULTS_FILE,
    SELECTED_PROJECTS_FILE,
    BALANCE_RESULTS_FILE,
    CASH_FLOW_RESULTS_FILE,
)

RESULT_MODELS = (OptimizationResult, SelectedProject, PeriodBalance, PeriodCashFlow)


def _decimal(row: Mapping[str, str], column: str) -> Decimal:
    try:
        return Decimal(row[column].strip())
    except InvalidOperation as exc:
        raise ValueError(f"column {column!r} is not a number: {row[column]!r}") from exc


def _int(row: Mapping[str, str], column: str) -> int:
    # Solvers write integral values as e.g. "3.0" now and then.
    return int(_decimal(row, column))


class ResultsProcessor:
    """Maps the solver's result files onto result rows."""

    def ingest(self, optimization: Optimization, csv_files: Mapping[str, Union[str, bytes]]) -> List[str]:
        """
        Replace the optimization's results with the contents of *csv_files*.

        Prior results are deleted and the new rows inserted in one
        transaction, together with the switch to ``completed``. Any mapping
        failure rolls the whole transaction back.

        Args:
            optimization (Optimization): Owner of the results
            csv_files (Mapping[str, str | bytes]): Result file contents keyed by canonical filename

        Returns:
            List[str]: Names of the files that were ingested
        """
        present = [name for name in RESULT_FILES if name in csv_files]
        for name in RESULT_FILES:
            if name not in csv_files:
                logger.warning(f"Result file {name} missing for optimization {optimization.id}; skipped")
        if not present:
            raise IngestionError(f"No result files available for optimization {optimization.id}")

        handlers = {
            SOLUTION_RESULTS_FILE: self._solution_results,
            SELECTED_PROJECTS_FILE: self._selected_projects,
            BALANCE_RESULTS_FILE: self._balance_results,
            CASH_FLOW_RESULTS_FILE: self._cash_flow_results,
        }

        current = None
        try:
            delete_for_optimization(RESULT_MODELS, optimization.id)
            for name in present:
                current = name
                rows = csv_codec.decode(csv_files[name])
                count = handlers[name](optimization.id, rows)
                logger.info(f"Mapped {count} rows from {name} for optimization {optimization.id}")
            current = None

            optimization.status = STATUS_COMPLETED
            optimization.completed_at = datetime.utcnow()
            optimization.output_files = present
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            where = f" in {current}" if current else ""
            logger.error(f"Ingestion failed for optimization {optimization.id}{where}: {exc}")
            raise IngestionError(f"Error processing results{where}: {exc}") from exc

        return present

    # ------------------------------------------------------------------
    #  Per-file mapping
    # ------------------------------------------------------------------
    def _solution_results(self, optimization_id: int, rows: List[Dict[str, str]]) -> int:
        if not rows:
            return 0
        row = rows[0]
        db.session.add(OptimizationResult(
            optimization_id=optimization_id,
            npv=_decimal(row, 'NPV'),
            final_balance=_decimal(row, 'FinalBalance'),
            initial_balance=_decimal(row, 'InitialBalance'),
            total_periods=_int(row, 'TotalPeriods'),
            total_projects=_int(row, 'TotalProjects'),
            projects_selected=_int(row, 'ProjectsSelected'),
            status=row['Status'],
        ))
        db.session.flush()
        return 1

    def _selected_projects(self, optimization_id: int, rows: List[Dict[str, str]]) -> int:
        for row in rows:
            db.session.add(SelectedProject(
                optimization_id=optimization_id,
                project_name=row['ProjectName'],
                start_period=_int(row, 'StartPeriod'),
                setup_cost=_decimal(row, 'SetupCost'),
                total_reward=_decimal(row, 'TotalReward'),
                npv_contribution=_decimal(row, 'NPV_Contribution'),
            ))
        db.session.flush()
        return len(rows)

    def _balance_results(self, optimization_id: int, rows: List[Dict[str, str]]) -> int:
        for row in rows:
            db.session.add(PeriodBalance(
                optimization_id=optimization_id,
                period=_int(row, 'Period'),
                balance=_decimal(row, 'Balance'),
                discounted_balance=_decimal(row, 'DiscountedBalance'),
            ))
        db.session.flush()
        return len(rows)

    def _cash_flow_results(self, optimization_id: int, rows: List[Dict[str, str]]) -> int:
        for row in rows:
            db.session.add(PeriodCashFlow(
                optimization_id=optimization_id,
                period=_int(row, 'Period'),
                cash_in=_decimal(row, 'CashIn'),
                cash_out=_decimal(row, 'CashOut'),
                net_cash_flow=_decimal(row, 'NetCashFlow'),
            ))
        db.session.flush()
        return len(rows)

    # ------------------------------------------------------------------
    #  Reporting
    # ------------------------------------------------------------------
    def summary(self, optimization: Optimization) -> Optional[Dict]:
        """Headline figures of a finished optimization; ``None`` without results."""
        result = OptimizationResult.query.filter_by(optimization_id=optimization.id).first()
        if result is None:
            return None

        projects = (
            SelectedProject.query.filter_by(optimization_id=optimization.id)
            .order_by(SelectedProject.start_period, SelectedProject.project_name)
            .all()
        )
        flows = PeriodCashFlow.query.filter_by(optimization_id=optimization.id).all()
        frame = pd.DataFrame(
            [f.to_dict() for f in flows],
            columns=['period', 'cash_in', 'cash_out', 'net_cash_flow'],
        )

        return {
            'npv': float(result.npv),
            'final_balance': float(result.final_balance),
            'efficiency_rate': result.efficiency_rate(),
            'roi': result.roi(),
            'selected_projects': [
                {
                    'name': p.project_name,
                    'start_period': p.start_period,
                    'roi': p.roi(),
                    'npv_contribution': float(p.npv_contribution),
                }
                for p in projects
            ],
            'cash_flow_summary': {
                'total_cash_in': float(frame['cash_in'].sum()),
                'total_cash_out': float(frame['cash_out'].sum()),
                'total_net_flow': float(frame['net_cash_flow'].sum()),
            },
        }

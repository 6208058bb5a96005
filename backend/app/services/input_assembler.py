from typing import Dict, List

from sqlalchemy import func

from ..database import db
from ..models.optimization import Optimization
from ..models.project_input import ProjectInput, TYPE_COST
from ..models.balance_constraint import BalanceConstraint
from ..models.project_group import ProjectGroup
from . import csv_codec

PARAMETERS_FILE = 'parameters.csv'
PROJECT_COSTS_FILE = 'ProjectCosts.csv'
PROJECT_REWARDS_FILE = 'ProjectRewards.csv'
MIN_BALANCE_FILE = 'MinBal.csv'
MUST_TAKE_ONE_FILE = 'MustTakeOne.csv'

INPUT_FILES = (
    PARAMETERS_FILE,
    PROJECT_COSTS_FILE,
    PROJECT_REWARDS_FILE,
    MIN_BALANCE_FILE,
    MUST_TAKE_ONE_FILE,
)


class InputAssembler:
    """Builds the solver input files from an optimization's stored rows."""

    def build_files(self, optimization: Optimization) -> Dict[str, str]:
        """Return the five canonical input files keyed by filename, in upload order."""
        return {
            PARAMETERS_FILE: self.parameters_csv(optimization),
            PROJECT_COSTS_FILE: self.project_costs_csv(optimization),
            PROJECT_REWARDS_FILE: self.project_rewards_csv(optimization),
            MIN_BALANCE_FILE: self.min_balance_csv(optimization),
            MUST_TAKE_ONE_FILE: self.must_take_one_csv(optimization),
        }

    def parameters_csv(self, optimization: Optimization) -> str:
        rows = [
            ('T', optimization.total_periods),
            ('Rate', optimization.discount_rate),
            ('InitBal', optimization.initial_balance),
            ('NbMustTakeOne', optimization.nb_must_take_one),
        ]
        return csv_codec.encode(['Parameter', 'Value'], rows)

    def project_costs_csv(self, optimization: Optimization) -> str:
        costs = (
            ProjectInput.costs_for(optimization.id)
            .order_by(ProjectInput.project_name, ProjectInput.period)
            .all()
        )
        return csv_codec.encode(
            ['project', 'period', 'cost'],
            [(c.project_name, c.period, c.amount) for c in costs],
        )

    def project_rewards_csv(self, optimization: Optimization) -> str:
        rewards = (
            ProjectInput.rewards_for(optimization.id)
            .order_by(ProjectInput.project_name, ProjectInput.period)
            .all()
        )
        return csv_codec.encode(
            ['project', 'period', 'reward'],
            [(r.project_name, r.period, r.amount) for r in rewards],
        )

    def min_balance_csv(self, optimization: Optimization) -> str:
        balances = (
            BalanceConstraint.query.filter_by(optimization_id=optimization.id)
            .order_by(BalanceConstraint.period)
            .all()
        )
        return csv_codec.encode(
            ['Period', 'MinBal'],
            [(b.period, b.min_balance) for b in balances],
        )

    def must_take_one_csv(self, optimization: Optimization) -> str:
        groups = (
            ProjectGroup.query.filter_by(optimization_id=optimization.id)
            .order_by(ProjectGroup.group_id, ProjectGroup.project_name)
            .all()
        )
        return csv_codec.encode(
            ['group', 'project'],
            [(g.group_id, g.project_name) for g in groups],
        )

    def validate(self, optimization: Optimization) -> List[str]:
        """
        Check that the stored inputs can be submitted.

        Nothing is modified; the caller decides whether to block submission.

        Returns:
            List[str]: Human readable problems, empty when the inputs are valid
        """
        errors: List[str] = []

        input_count = ProjectInput.query.filter_by(optimization_id=optimization.id).count()
        if input_count == 0:
            errors.append('No project inputs defined')

        # Every project referenced anywhere needs at least one cost entry.
        referenced = {
            r.project_name
            for r in db.session.query(ProjectInput.project_name)
            .filter_by(optimization_id=optimization.id)
            .distinct()
        }
        referenced.update(
            r.project_name
            for r in db.session.query(ProjectGroup.project_name)
            .filter_by(optimization_id=optimization.id)
            .distinct()
        )
        with_costs = {
            r.project_name
            for r in db.session.query(ProjectInput.project_name)
            .filter_by(optimization_id=optimization.id, type=TYPE_COST)
            .distinct()
        }
        for name in sorted(referenced - with_costs):
            errors.append(f"Project '{name}' has no cost entries")

        if optimization.total_periods is None or optimization.total_periods <= 0:
            errors.append('Total periods must be greater than 0')

        if optimization.initial_balance is None or optimization.initial_balance <= 0:
            errors.append('Initial balance must be greater than 0')

        nb_must_take_one = optimization.nb_must_take_one or 0
        if nb_must_take_one > 0:
            max_group = (
                db.session.query(func.max(ProjectGroup.group_id))
                .filter(ProjectGroup.optimization_id == optimization.id)
                .scalar()
            )
            if max_group != nb_must_take_one:
                errors.append(
                    f"NbMustTakeOne ({nb_must_take_one}) does not match the number of "
                    f"must-take-one groups ({max_group or 0})"
                )

        return errors

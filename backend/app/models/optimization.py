import json
from datetime import datetime
from ..database import db

STATUS_PENDING = 'pending'
STATUS_RUNNING = 'running'
STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'
STATUS_CANCELLED = 'cancelled'

STATUSES = (STATUS_PENDING, STATUS_RUNNING, STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED)


def _as_float(value):
    return float(value) if value is not None else None


class Optimization(db.Model):
    """Aggregate root of one capital-budgeting run.

    Input rows (project inputs, balance constraints, project groups) and
    result rows all reference this table through ``optimization_id``; they
    are loaded and deleted with explicit queries scoped to that key.
    """
    __tablename__ = 'optimizations'

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)

    # Model parameters (parameters.csv) ----------------------------------
    total_periods = db.Column(db.Integer, nullable=False)               # T
    discount_rate = db.Column(db.Numeric(8, 6), nullable=False)         # Rate
    initial_balance = db.Column(db.Numeric(15, 2), nullable=False)      # InitBal
    nb_must_take_one = db.Column(db.Integer, nullable=False, default=0)  # NbMustTakeOne

    # Files and trace ------------------------------------------------------
    input_files_path = db.Column(db.String(500), nullable=True)
    output_files_path = db.Column(db.String(500), nullable=True)
    execution_log = db.Column(db.Text, nullable=True)

    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, *, total_periods, discount_rate, initial_balance,
                 nb_must_take_one=0, description=None, status=STATUS_PENDING):
        self.total_periods = total_periods
        self.discount_rate = discount_rate
        self.initial_balance = initial_balance
        self.nb_must_take_one = nb_must_take_one
        self.description = description
        self.status = status

    # Status helpers --------------------------------------------------------
    def is_pending(self):
        return self.status == STATUS_PENDING

    def is_running(self):
        return self.status == STATUS_RUNNING

    def is_completed(self):
        return self.status == STATUS_COMPLETED

    def has_failed(self):
        return self.status == STATUS_FAILED

    def is_cancelled(self):
        return self.status == STATUS_CANCELLED

    def append_log(self, line: str) -> None:
        """Add *line* to the execution log; earlier lines are never rewritten."""
        if self.execution_log:
            self.execution_log = f"{self.execution_log}\n{line}"
        else:
            self.execution_log = line

    @property
    def input_files(self):
        return json.loads(self.input_files_path) if self.input_files_path else []

    @input_files.setter
    def input_files(self, names):
        self.input_files_path = json.dumps(list(names))

    @property
    def output_files(self):
        return json.loads(self.output_files_path) if self.output_files_path else []

    @output_files.setter
    def output_files(self, names):
        self.output_files_path = json.dumps(list(names))

    def project_names(self):
        """Distinct project names referenced by the stored inputs."""
        from .project_input import ProjectInput

        rows = (
            db.session.query(ProjectInput.project_name)
            .filter_by(optimization_id=self.id)
            .distinct()
            .order_by(ProjectInput.project_name)
            .all()
        )
        return [r.project_name for r in rows]

    def total_projects_count(self):
        return len(self.project_names())

    def to_dict(self):
        """Convert optimization to dictionary."""
        return {
            'id': self.id,
            'description': self.description,
            'status': self.status,
            'total_periods': self.total_periods,
            'discount_rate': _as_float(self.discount_rate),
            'initial_balance': _as_float(self.initial_balance),
            'nb_must_take_one': self.nb_must_take_one,
            'input_files': self.input_files,
            'output_files': self.output_files,
            'execution_log': self.execution_log,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

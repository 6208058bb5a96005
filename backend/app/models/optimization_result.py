from datetime import datetime
from ..database import db

class OptimizationResult(db.Model):
    """Solver summary for an optimization (SolutionResults.csv)."""
    __tablename__ = 'optimization_results'

    id = db.Column(db.Integer, primary_key=True)
    optimization_id = db.Column(
        db.Integer, db.ForeignKey('optimizations.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    npv = db.Column(db.Numeric(15, 2), nullable=False)
    final_balance = db.Column(db.Numeric(15, 2), nullable=False)
    initial_balance = db.Column(db.Numeric(15, 2), nullable=False)
    total_periods = db.Column(db.Integer, nullable=False)
    total_projects = db.Column(db.Integer, nullable=False)
    projects_selected = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(50), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, *, optimization_id: int, npv, final_balance, initial_balance,
                 total_periods: int, total_projects: int, projects_selected: int, status: str):
        self.optimization_id = optimization_id
        self.npv = npv
        self.final_balance = final_balance
        self.initial_balance = initial_balance
        self.total_periods = total_periods
        self.total_projects = total_projects
        self.projects_selected = projects_selected
        self.status = status

    def efficiency_rate(self) -> float:
        """Share of candidate projects that made it into the solution, in percent."""
        if not self.total_projects:
            return 0.0
        return self.projects_selected / self.total_projects * 100

    def roi(self) -> float:
        """Growth of the balance over the horizon, in percent."""
        if not self.initial_balance:
            return 0.0
        return float((self.final_balance - self.initial_balance) / self.initial_balance * 100)

    def to_dict(self):
        """Convert result to dictionary."""
        return {
            'id': self.id,
            'optimization_id': self.optimization_id,
            'npv': float(self.npv),
            'final_balance': float(self.final_balance),
            'initial_balance': float(self.initial_balance),
            'total_periods': self.total_periods,
            'total_projects': self.total_projects,
            'projects_selected': self.projects_selected,
            'status': self.status,
        }


class SelectedProject(db.Model):
    """A project picked by the solver (SelectedProjectsOutput.csv)."""
    __tablename__ = 'selected_projects'

    id = db.Column(db.Integer, primary_key=True)
    optimization_id = db.Column(
        db.Integer, db.ForeignKey('optimizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    project_name = db.Column(db.String(255), nullable=False)
    start_period = db.Column(db.Integer, nullable=False)
    setup_cost = db.Column(db.Numeric(15, 2), nullable=False)
    total_reward = db.Column(db.Numeric(15, 2), nullable=False)
    npv_contribution = db.Column(db.Numeric(15, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, *, optimization_id: int, project_name: str, start_period: int,
                 setup_cost, total_reward, npv_contribution):
        self.optimization_id = optimization_id
        self.project_name = project_name
        self.start_period = start_period
        self.setup_cost = setup_cost
        self.total_reward = total_reward
        self.npv_contribution = npv_contribution

    def roi(self) -> float:
        if not self.setup_cost:
            return 0.0
        return float((self.total_reward - self.setup_cost) / self.setup_cost * 100)

    def to_dict(self):
        return {
            'id': self.id,
            'project_name': self.project_name,
            'start_period': self.start_period,
            'setup_cost': float(self.setup_cost),
            'total_reward': float(self.total_reward),
            'npv_contribution': float(self.npv_contribution),
        }

from datetime import datetime
from ..database import db

TYPE_COST = 'cost'
TYPE_REWARD = 'reward'


class ProjectInput(db.Model):
    """Sparse per-project, per-period cash entry (cost or reward)."""
    __tablename__ = 'project_inputs'

    id = db.Column(db.Integer, primary_key=True)
    optimization_id = db.Column(
        db.Integer, db.ForeignKey('optimizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    project_name = db.Column(db.String(255), nullable=False)
    period = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(10), nullable=False)  # 'cost' or 'reward'
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            'optimization_id', 'project_name', 'period', 'type',
            name='uq_project_input_entry'
        ),
    )

    def __init__(self, *, optimization_id: int, project_name: str, period: int, type: str, amount):
        self.optimization_id = optimization_id
        self.project_name = project_name
        self.period = period
        self.type = type
        self.amount = amount

    @classmethod
    def costs_for(cls, optimization_id):
        return cls.query.filter_by(optimization_id=optimization_id, type=TYPE_COST)

    @classmethod
    def rewards_for(cls, optimization_id):
        return cls.query.filter_by(optimization_id=optimization_id, type=TYPE_REWARD)

    def to_dict(self):
        return {
            'id': self.id,
            'optimization_id': self.optimization_id,
            'project_name': self.project_name,
            'period': self.period,
            'type': self.type,
            'amount': float(self.amount),
        }

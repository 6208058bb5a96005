from datetime import datetime
from ..database import db

class BalanceConstraint(db.Model):
    """Minimum balance the portfolio must keep at the end of a period."""
    __tablename__ = 'balance_constraints'

    id = db.Column(db.Integer, primary_key=True)
    optimization_id = db.Column(
        db.Integer, db.ForeignKey('optimizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    period = db.Column(db.Integer, nullable=False)
    min_balance = db.Column(db.Numeric(15, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('optimization_id', 'period', name='uq_balance_constraint_period'),
    )

    def __init__(self, *, optimization_id: int, period: int, min_balance):
        self.optimization_id = optimization_id
        self.period = period
        self.min_balance = min_balance

    def to_dict(self):
        return {
            'id': self.id,
            'optimization_id': self.optimization_id,
            'period': self.period,
            'min_balance': float(self.min_balance),
        }

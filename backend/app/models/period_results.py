from datetime import datetime
from ..database import db

class PeriodBalance(db.Model):
    """Balance at the end of a period (BalanceResults.csv)."""
    __tablename__ = 'period_balances'

    id = db.Column(db.Integer, primary_key=True)
    optimization_id = db.Column(
        db.Integer, db.ForeignKey('optimizations.id', ondelete='CASCADE'), nullable=False
    )
    period = db.Column(db.Integer, nullable=False)
    balance = db.Column(db.Numeric(15, 2), nullable=False)
    discounted_balance = db.Column(db.Numeric(15, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('optimization_id', 'period', name='uq_period_balance'),
    )

    def __init__(self, *, optimization_id: int, period: int, balance, discounted_balance):
        self.optimization_id = optimization_id
        self.period = period
        self.balance = balance
        self.discounted_balance = discounted_balance

    def to_dict(self):
        return {
            'period': self.period,
            'balance': float(self.balance),
            'discounted_balance': float(self.discounted_balance),
        }


class PeriodCashFlow(db.Model):
    """Cash in/out of a period (CashFlowResults.csv)."""
    __tablename__ = 'period_cash_flows'

    id = db.Column(db.Integer, primary_key=True)
    optimization_id = db.Column(
        db.Integer, db.ForeignKey('optimizations.id', ondelete='CASCADE'), nullable=False
    )
    period = db.Column(db.Integer, nullable=False)
    cash_in = db.Column(db.Numeric(15, 2), nullable=False)
    cash_out = db.Column(db.Numeric(15, 2), nullable=False)
    net_cash_flow = db.Column(db.Numeric(15, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('optimization_id', 'period', name='uq_period_cash_flow'),
    )

    def __init__(self, *, optimization_id: int, period: int, cash_in, cash_out, net_cash_flow):
        self.optimization_id = optimization_id
        self.period = period
        self.cash_in = cash_in
        self.cash_out = cash_out
        self.net_cash_flow = net_cash_flow

    def to_dict(self):
        return {
            'period': self.period,
            'cash_in': float(self.cash_in),
            'cash_out': float(self.cash_out),
            'net_cash_flow': float(self.net_cash_flow),
        }

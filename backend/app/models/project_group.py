from datetime import datetime
from ..database import db

class ProjectGroup(db.Model):
    """Membership of a project in a must-take-one group."""
    __tablename__ = 'project_groups'

    id = db.Column(db.Integer, primary_key=True)
    optimization_id = db.Column(
        db.Integer, db.ForeignKey('optimizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    group_id = db.Column(db.Integer, nullable=False)
    project_name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('optimization_id', 'group_id', 'project_name', name='uq_project_group_member'),
    )

    def __init__(self, *, optimization_id: int, group_id: int, project_name: str):
        self.optimization_id = optimization_id
        self.group_id = group_id
        self.project_name = project_name

    def to_dict(self):
        return {
            'id': self.id,
            'optimization_id': self.optimization_id,
            'group_id': self.group_id,
            'project_name': self.project_name,
        }

from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow
from pathlib import Path

db = SQLAlchemy()
ma = Marshmallow()

def init_db(app):
    """Initialize the database with the Flask app."""
    # ------------------------------------------------------------------
    # Use an *absolute* path for the SQLite file so that the application
    # works no matter what the current working directory is.  A URI set
    # beforehand (tests, deployments) is left untouched.
    # ------------------------------------------------------------------
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        # The project root is two levels up from this file (backend/app → backend → project root)
        project_root = Path(__file__).resolve().parent.parent.parent

        # Ensure the instance directory exists (otherwise SQLite cannot create the DB file)
        instance_dir = project_root / 'instance'
        instance_dir.mkdir(parents=True, exist_ok=True)

        db_path = instance_dir / 'optimizations.db'
        app.config['SQLALCHEMY_DATABASE_URI'] = f"sqlite:///{db_path.as_posix()}"

    app.config.setdefault('SQLALCHEMY_TRACK_MODIFICATIONS', False)
    db.init_app(app)
    ma.init_app(app)

    with app.app_context():
        # Every model module must be imported so its table is part of the
        # metadata before ``create_all`` runs.
        from .models import (  # noqa: F401 - imported for side-effect
            optimization,
            project_input,
            balance_constraint,
            project_group,
            optimization_result,
            period_results,
        )

        db.create_all()


def delete_for_optimization(models, optimization_id):
    """Delete every row of *models* that belongs to one optimization.

    Rows are removed with bulk queries scoped to the foreign key; nothing is
    committed here so callers can group the deletes into their own
    transaction.
    """
    for model in models:
        model.query.filter_by(optimization_id=optimization_id).delete(synchronize_session=False)

from backend.app import create_app
from backend.app.database import db

def init_database():
    app = create_app({'STATUS_POLLING_ENABLED': False})
    with app.app_context():
        # Create all optimization input and result tables
        db.create_all()
        print("Database initialized successfully!")

if __name__ == "__main__":
    init_database()

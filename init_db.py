from academy import create_app, db
from academy.cli import seed_data

app = create_app()

with app.app_context():
    # Drop all tables
    db.drop_all()

    # Create all tables
    db.create_all()

    seed_data()

    print("Database initialized successfully!")

"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db migrate -m "description"
    flask db upgrade
"""

from ehub import create_app

app = create_app()

"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db migrate -m "description"
    flask db upgrade
    gunicorn wsgi:app
"""

from gather import create_app

app = create_app()

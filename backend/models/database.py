"""
Database handle shared by all models.

Initialized against the Flask app in app.create_app().
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

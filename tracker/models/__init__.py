"""
Project Tracker
Model registry — the shared Flask-SQLAlchemy handle.

Every model module imports ``db`` from here; ``tracker.create_app`` imports
the model modules so metadata is complete before ``db.create_all()``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

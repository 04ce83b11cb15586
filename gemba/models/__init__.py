"""
Gemba Walk Tracker
Shared SQLAlchemy handle.

Usage:
    from gemba.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

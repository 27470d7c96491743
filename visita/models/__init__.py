"""
VISITA Church Registry
Shared SQLAlchemy handle.

Usage:
    from visita.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

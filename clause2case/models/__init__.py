"""
Clause2Case
SQLAlchemy extension instance shared by all models.

Usage:
    from clause2case.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

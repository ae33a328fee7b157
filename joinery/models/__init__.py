"""
Joinery Core — SQLAlchemy models.

The shared ``db`` handle lives here so every model module and the store
adapter import the same instance:

    from joinery.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

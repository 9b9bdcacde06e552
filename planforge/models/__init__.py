"""
PlanForge
Database models package.

All models share the single Flask-SQLAlchemy instance defined here.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

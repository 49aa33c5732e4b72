"""
Declarative base shared by every adlink table.

Imported by the models and by Alembic; it imports nothing from the package
so either side can load it first.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

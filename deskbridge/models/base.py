"""
Declarative base shared by all DeskBridge models.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

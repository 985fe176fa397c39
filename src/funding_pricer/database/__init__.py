"""
Persistence layer: SQLAlchemy models and keyed repositories.
"""

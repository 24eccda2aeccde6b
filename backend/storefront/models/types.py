"""
Column types shared across models.
"""
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in development/tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

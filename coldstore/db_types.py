"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import Numeric
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# UUID type that works with both databases
UUIDType = PG_UUID

# Quantities, weights and unit prices: 18 digits, 6 fractional
QuantityType = Numeric(18, 6)

# Monetary amounts: rounded to cents
MoneyType = Numeric(18, 2)

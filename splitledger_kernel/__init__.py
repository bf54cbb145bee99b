"""
SplitLedger Kernel - shared infrastructure for the group ledger.

Provides:
- SQLAlchemy declarative base, engine and session management
- Ledger entities (groups, members, budgets, transactions, balances)
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging and an injectable clock
"""

__version__ = "0.1.0"

"""
Travel Kernel - travel-support reimbursement core

Pure domain types, typed errors, structured logging, and database plumbing
shared by the engines, services, and the travel support module:
- Immutable request/expense snapshots
- Explicit request state machine
- Multi-currency amounts with Decimal arithmetic
- Typed exceptions with machine-readable codes
"""

__version__ = "0.1.0"

"""
Travel Modules.

Thin orchestration layers over the travel kernel, engines and services.
Each module contains:
- ORM persistence models
- Workflows (state machines)
- A repository port with its adapters
- A service facade (the only public entry point)

Modules:
- Travel Support: speaker reimbursement requests, expenses, receipts, review
"""

from travel_modules import travel_support

__all__ = ["travel_support"]

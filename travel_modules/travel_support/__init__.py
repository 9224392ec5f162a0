"""
Travel Support Module (``travel_modules.travel_support``).

Responsibility
--------------
The speaker reimbursement cycle for a conference: a draft request with
banking details and expenses, submission, per-expense review, request
approval or rejection, and payment.

Architecture position
---------------------
**Modules layer** -- the ``TRAVEL_SUPPORT_WORKFLOW`` state machine, ORM
models, a repository port with in-memory and SQLAlchemy adapters, and the
``TravelSupportService`` facade.

Failure modes
-------------
* ``TravelSupportResult.is_success == False`` -- guard rejection,
  validation failure, missing entity or upload failure.
"""

from travel_modules.travel_support.repository import (
    InMemoryTravelSupportRepository,
    SqlAlchemyTravelSupportRepository,
    TravelSupportRepository,
)
from travel_modules.travel_support.service import (
    CommandStatus,
    TravelSupportResult,
    TravelSupportService,
)
from travel_modules.travel_support.workflows import (
    TRAVEL_SUPPORT_WORKFLOW,
    RequestAction,
    TransitionContext,
    apply_transition,
)

__all__ = [
    "CommandStatus",
    "InMemoryTravelSupportRepository",
    "RequestAction",
    "SqlAlchemyTravelSupportRepository",
    "TRAVEL_SUPPORT_WORKFLOW",
    "TransitionContext",
    "TravelSupportRepository",
    "TravelSupportResult",
    "TravelSupportService",
    "apply_transition",
]

"""Runner subsystem — selection, concurrent execution, result aggregation."""

from .engine import run_checks
from .results import (
    STATUS_UNKNOWN,
    CheckListing,
    CheckOutcome,
    CombinedResult,
    Mode,
    aggregate,
    describe,
)
from .runner import Phase, Runner

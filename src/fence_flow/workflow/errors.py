"""Exceptions raised by the workflow engine.

Domain errors derive from :class:`WorkflowError` and describe a rule the
caller broke. Infrastructure errors derive from :class:`InfrastructureError`
and mean the store itself failed; the attempted change was rolled back.
"""


class WorkflowError(Exception):
    """Base class for every business-rule failure."""


# ── Transitions ─────────────────────────────────────────────────


class TransitionError(WorkflowError):
    """A requested status change was refused."""


class IllegalTransition(TransitionError):
    def __init__(self, entity_type: str, entity_id, current: str,
                 attempted: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"{entity_type} {entity_id}: cannot move from "
            f"'{current}' to '{attempted}'"
        )


class ApprovalRequired(TransitionError):
    def __init__(self, quote_id, reasons):
        self.quote_id = quote_id
        self.reasons = list(reasons)
        super().__init__(
            f"quote {quote_id} needs manager approval "
            f"({', '.join(self.reasons)})"
        )


class PhaseAlreadyRecorded(TransitionError):
    """The phase timestamp for the target status is already set."""

    def __init__(self, job_id, field: str, recorded_at: str):
        self.job_id = job_id
        self.field = field
        self.recorded_at = recorded_at
        super().__init__(
            f"job {job_id}: {field} already recorded at {recorded_at}"
        )


class PhaseOutOfOrder(TransitionError):
    def __init__(self, job_id, field: str, stamp: str,
                 earlier_field: str, earlier_stamp: str):
        self.job_id = job_id
        self.field = field
        self.stamp = stamp
        self.earlier_field = earlier_field
        self.earlier_stamp = earlier_stamp
        super().__init__(
            f"job {job_id}: {field}={stamp} is before "
            f"{earlier_field}={earlier_stamp}"
        )


class MissingConversionLink(TransitionError):
    """A converted entity must point at what it was converted into."""

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} cannot be marked converted "
            f"without a conversion link"
        )


class BalanceOutstanding(TransitionError):
    def __init__(self, invoice_id, balance_due: float):
        self.invoice_id = invoice_id
        self.balance_due = balance_due
        super().__init__(
            f"invoice {invoice_id} still has {balance_due:.2f} outstanding"
        )


# ── Feasibility ─────────────────────────────────────────────────


class FeasibilityError(WorkflowError):
    """An assignment failed a feasibility check. Managers may override."""

    def __init__(self, result):
        self.result = result
        super().__init__(f"{result.reason}: {result.detail}")


class TerritoryMismatch(FeasibilityError):
    pass


class SkillGap(FeasibilityError):
    pass


class CapacityExceeded(FeasibilityError):
    pass


_FEASIBILITY_ERRORS = {
    "TerritoryMismatch": TerritoryMismatch,
    "SkillGap": SkillGap,
    "CapacityExceeded": CapacityExceeded,
}


def feasibility_error_for(result) -> FeasibilityError:
    """Build the exception matching a failed FeasibilityResult."""
    return _FEASIBILITY_ERRORS.get(result.reason, FeasibilityError)(result)


# ── Other domain errors ─────────────────────────────────────────


class ConcurrentModification(WorkflowError):
    """Someone else changed the entity first. Re-read and retry once."""

    def __init__(self, entity_type: str, entity_id,
                 expected_version=None, actual_version=None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = (f" (expected version {expected_version}, "
                      f"found {actual_version})")
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently{detail}"
        )


class EntityNotFound(WorkflowError):
    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class OverrideNotPermitted(WorkflowError):
    def __init__(self, actor_name: str, action: str):
        self.actor_name = actor_name
        self.action = action
        super().__init__(f"{actor_name} is not allowed to {action}")


class PaymentRejected(WorkflowError):
    def __init__(self, invoice_id, reason: str):
        self.invoice_id = invoice_id
        self.reason = reason
        super().__init__(f"payment on invoice {invoice_id} rejected: {reason}")


# ── Infrastructure ──────────────────────────────────────────────


class InfrastructureError(Exception):
    """The backing store failed. Nothing was written."""


class StoreUnavailable(InfrastructureError):
    pass


class LedgerWriteError(InfrastructureError):
    pass

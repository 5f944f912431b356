"""Quote approval gate: does this quote need manager sign-off before sending?"""

import logging
from typing import Optional

from fence_flow.config import Config
from fence_flow.database.models import ApprovalEvaluation, Quote
from fence_flow.utils.constants import (
    THRESHOLD_DISCOUNT_MAXIMUM,
    THRESHOLD_MARGIN_MINIMUM,
    THRESHOLD_QUOTE_TOTAL,
)

from .errors import ApprovalRequired

logger = logging.getLogger(__name__)


def evaluate_approval(quote: Quote,
                      thresholds: Optional[dict] = None) -> ApprovalEvaluation:
    """Check a quote against the approval thresholds.

    Each predicate is independent; any one of them makes approval required.
    A quote with no known margin is not held for margin.

    Args:
        quote: The quote to evaluate.
        thresholds: Mapping of threshold kind to limit. Defaults to the
            values in Config.

    Returns:
        ApprovalEvaluation with the triggered reasons in a fixed order.
    """
    if thresholds is None:
        thresholds = Config.approval_thresholds()

    reasons = []
    if (quote.total or 0) > thresholds[THRESHOLD_QUOTE_TOTAL]:
        reasons.append(THRESHOLD_QUOTE_TOTAL)
    if (quote.margin_percent is not None
            and quote.margin_percent < thresholds[THRESHOLD_MARGIN_MINIMUM]):
        reasons.append(THRESHOLD_MARGIN_MINIMUM)
    if quote.effective_discount_percent > thresholds[THRESHOLD_DISCOUNT_MAXIMUM]:
        reasons.append(THRESHOLD_DISCOUNT_MAXIMUM)

    return ApprovalEvaluation(required=bool(reasons), reasons=tuple(reasons))


def approval_fields_after_save(quote: Quote, evaluation: ApprovalEvaluation,
                               previous_reasons: list[str]) -> dict:
    """Column values to store on a quote after it has been (re)priced.

    An existing approval survives a save as long as the same reasons are
    triggered; a change in reasons sends the quote back for approval.
    """
    fields = {
        "requires_approval": int(evaluation.required),
        "approval_reason": evaluation.reason_text,
    }
    if not evaluation.required:
        if quote.approval_status == "pending":
            fields["approval_status"] = None
        return fields

    if (quote.approval_status == "approved"
            and sorted(previous_reasons) != sorted(evaluation.reasons)):
        logger.info(
            "Quote %s repriced (%s -> %s); approval reset",
            quote.quote_number, ",".join(previous_reasons),
            evaluation.reason_text,
        )
        fields.update(
            approval_status="pending",
            approved_by=None,
            approved_at=None,
        )
    return fields


def ensure_sendable(quote: Quote,
                    thresholds: Optional[dict] = None,
                    approved_reasons: Optional[list[str]] = None
                    ) -> ApprovalEvaluation:
    """Raise ApprovalRequired if the quote may not be sent yet.

    ``approved_reasons`` are the reasons stored when the approval was given;
    an approval does not cover a quote that now trips different ones.
    """
    evaluation = evaluate_approval(quote, thresholds)
    if not evaluation.required:
        return evaluation
    if quote.approval_status != "approved":
        raise ApprovalRequired(quote.id, evaluation.reasons)
    if (approved_reasons is not None
            and sorted(approved_reasons) != sorted(evaluation.reasons)):
        raise ApprovalRequired(quote.id, evaluation.reasons)
    return evaluation

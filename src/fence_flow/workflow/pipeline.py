"""Request -> Quote -> Job -> Invoice operations built on the engine.

Each public method is one atomic unit of work. Composite operations (such as
converting a quote into a job) create the new entity and transition the old
one inside a single transaction.
"""

import json
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Optional

from fence_flow.config import Config
from fence_flow.database.models import (
    Actor,
    AssignmentCheck,
    FeasibilityResult,
    Invoice,
    Job,
    Payment,
    Quote,
    ServiceRequest,
)
from fence_flow.database.repository import entity_columns
from fence_flow.utils.constants import (
    PAYMENT_METHODS,
    REQUEST_PRIORITIES,
    REQUEST_SOURCES,
    REQUEST_TYPES,
    SEND_METHODS,
)

from .approval import approval_fields_after_save, evaluate_approval
from .engine import WorkflowEngine
from .errors import (
    OverrideNotPermitted,
    PaymentRejected,
    feasibility_error_for,
)
from .yard import ENTRY_STAMPS

logger = logging.getLogger(__name__)

EDITABLE_QUOTE_STATUSES = ("draft", "pending_approval", "changes_requested")
APPROVABLE_QUOTE_STATUSES = EDITABLE_QUOTE_STATUSES
SCHEDULABLE_JOB_STATUSES = ("won", "scheduled")
PAYABLE_INVOICE_STATUSES = ("sent", "past_due")

_PRICING_INPUTS = {
    "subtotal", "tax_rate", "discount_amount", "discount_percent",
    "total_material_cost", "total_labor_cost",
}


def _check_choice(name: str, value, choices: list):
    if value is not None and value not in choices:
        raise ValueError(
            f"Invalid {name} {value!r}; expected one of {', '.join(choices)}"
        )


def _check_fields(entity_type: str, values: dict):
    unknown = set(values) - entity_columns(entity_type)
    if unknown:
        raise ValueError(
            f"Unknown {entity_type} field(s): {', '.join(sorted(unknown))}"
        )


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _format_address(line1, city, state, zip_code) -> Optional[str]:
    locality = " ".join(p for p in (state, zip_code) if p)
    parts = [p for p in (line1, city, locality) if p]
    return ", ".join(parts) or None


def price_quote(current: dict, changes: dict) -> dict:
    """Fill derived pricing columns for a quote edit.

    Totals are recomputed from subtotal, discount and tax whenever one of
    the pricing inputs changes, unless ``total`` is given explicitly. Margin
    is derived from material and labor cost when costs are known.
    """
    changes = dict(changes)
    if not (_PRICING_INPUTS & set(changes)):
        return changes

    merged = {**current, **changes}
    subtotal = float(merged.get("subtotal") or 0)

    if "discount_percent" in changes and "discount_amount" not in changes:
        changes["discount_amount"] = round(
            subtotal * float(changes["discount_percent"] or 0) / 100, 2,
        )
    elif "discount_amount" in changes and "discount_percent" not in changes:
        amount = float(changes["discount_amount"] or 0)
        changes["discount_percent"] = (
            round(amount / subtotal * 100, 2) if subtotal else 0.0
        )
    discount = float({**merged, **changes}.get("discount_amount") or 0)
    net = round(subtotal - discount, 2)

    if "total" not in changes:
        tax_rate = float(merged.get("tax_rate") or 0)
        changes["tax_amount"] = round(net * tax_rate / 100, 2)
        changes["total"] = round(net + changes["tax_amount"], 2)

    cost = (float(merged.get("total_material_cost") or 0)
            + float(merged.get("total_labor_cost") or 0))
    if "margin_percent" not in changes and cost > 0 and net > 0:
        changes["margin_percent"] = round((net - cost) / net * 100, 2)
    return changes


class FieldServicePipeline:
    """Day-to-day operations on requests, quotes, jobs and invoices."""

    def __init__(self, engine: WorkflowEngine):
        self.engine = engine
        self.repo = engine.repo

    # ── Assignment checks ───────────────────────────────────────

    def _enforce_feasibility(self, result: FeasibilityResult,
                             assignee_type: str, assignee_id: int,
                             target_type: str, target_id: int, day,
                             actor: Actor, override: bool):
        """Record a feasibility result and raise unless it may proceed."""
        if override and not actor.is_privileged:
            raise OverrideNotPermitted(actor.name, "override assignment checks")
        overridden = override and not result.ok
        self.repo.record_assignment_check(AssignmentCheck(
            assignee_type=assignee_type,
            assignee_id=assignee_id,
            target_type=target_type,
            target_id=target_id,
            check_date=_as_text(day),
            ok=int(result.ok),
            reason=result.reason,
            detail=result.detail,
            overridden=int(overridden),
            checked_by=actor.name,
            checked_at=self.engine.timestamp(),
        ))
        if result.ok:
            return
        if overridden:
            logger.warning(
                "%s overrode %s for %s %s on %s %s: %s",
                actor.name, result.reason, assignee_type, assignee_id,
                target_type, target_id, result.detail,
            )
            return
        raise feasibility_error_for(result)

    # ── Requests ────────────────────────────────────────────────

    def create_request(self, actor: Actor, **values) -> ServiceRequest:
        """Log a new inbound request in ``pending``."""
        _check_choice("source", values.get("source"), REQUEST_SOURCES)
        _check_choice("request type", values.get("request_type"),
                      REQUEST_TYPES)
        _check_choice("priority", values.get("priority"), REQUEST_PRIORITIES)
        values.setdefault("state", Config.DEFAULT_STATE)
        if values.get("territory_id") is None and values.get("zip"):
            territory = self.repo.find_territory_for_zip(values["zip"])
            if territory is not None:
                values["territory_id"] = territory.id
        return self.engine.create_entity("request", values, actor)

    def schedule_assessment(self, request_id: int, rep_id: int,
                            scheduled_at, actor: Actor,
                            override: bool = False,
                            expected_version: Optional[int] = None
                            ) -> ServiceRequest:
        """Book (or rebook) a site assessment with a rep."""
        request = self.engine.get("request", request_id)
        day = _as_date(scheduled_at)
        result = self.engine.checker.check_assessment(rep_id, request, day)
        self._enforce_feasibility(result, "rep", rep_id, "request",
                                  request_id, day, actor, override)

        fields = {
            "assessment_rep_id": rep_id,
            "assessment_scheduled_at": _as_text(scheduled_at),
            "requires_assessment": 1,
        }
        if request.assigned_rep_id is None:
            fields["assigned_rep_id"] = rep_id
        if request.status == "assessment_scheduled":
            return self.engine.update_fields(
                "request", request_id, fields, expected_version,
            )
        return self.engine.apply_transition(
            "request", request_id, "assessment_scheduled", actor,
            note=f"Assessment on {day.isoformat()}",
            expected_version=expected_version, **fields,
        )

    def complete_assessment(self, request_id: int, actor: Actor,
                            notes: Optional[str] = None,
                            expected_version: Optional[int] = None
                            ) -> ServiceRequest:
        fields = {"assessment_notes": notes} if notes else {}
        return self.engine.apply_transition(
            "request", request_id, "assessment_completed", actor,
            expected_version=expected_version, **fields,
        )

    def archive_request(self, request_id: int, actor: Actor,
                        reason: Optional[str] = None) -> ServiceRequest:
        return self.engine.apply_transition(
            "request", request_id, "archived", actor, note=reason,
        )

    def reopen_request(self, request_id: int, actor: Actor,
                       note: Optional[str] = None) -> ServiceRequest:
        return self.engine.apply_transition(
            "request", request_id, "pending", actor, note=note,
        )

    def convert_request_to_quote(self, request_id: int, actor: Actor,
                                 **quote_values) -> Quote:
        """Create a draft quote from a request and mark it converted."""
        with self.engine.transaction("request", request_id) as conn:
            request = self.engine.get("request", request_id, conn=conn)
            values = {
                "request_id": request.id,
                "project_id": request.project_id,
                "client_id": request.client_id,
                "community_id": request.community_id,
                "property_id": request.property_id,
                "job_address": _format_address(
                    request.address_line1, request.city,
                    request.state, request.zip,
                ),
                "product_type": request.product_type,
                "linear_feet": request.linear_feet_estimate,
                "scope_summary": request.description,
                "sales_rep_id": request.assigned_rep_id,
                "territory_id": request.territory_id,
                "payment_terms": Config.DEFAULT_PAYMENT_TERMS,
            }
            _check_fields("quote", quote_values)
            values.update(price_quote({}, quote_values))

            quote = self.engine.create_in(
                conn, "quote", values, actor,
                note=f"Created from request {request.request_number}",
                managed_fields=self._approval_fields(Quote(**values)),
            )
            self.engine.transition_in(
                conn, "request", request_id, "converted", actor,
                note=f"Converted to quote {quote.quote_number}",
                converted_to_quote_id=quote.id,
            )
        return quote

    def convert_request_to_job(self, request_id: int, actor: Actor,
                               **job_values) -> Job:
        """Skip quoting: create a job straight from a request."""
        with self.engine.transaction("request", request_id) as conn:
            request = self.engine.get("request", request_id, conn=conn)
            if request.client_id is None:
                raise ValueError(
                    "Request must have a client assigned to convert "
                    "directly to a job"
                )
            values = {
                "request_id": request.id,
                "project_id": request.project_id,
                "is_warranty": int(request.request_type == "warranty"),
                "client_id": request.client_id,
                "community_id": request.community_id,
                "property_id": request.property_id,
                "job_address": _format_address(
                    request.address_line1, request.city,
                    request.state, request.zip,
                ),
                "product_type": request.product_type,
                "linear_feet": request.linear_feet_estimate,
                "description": request.description,
                "assigned_rep_id": request.assigned_rep_id,
                "territory_id": request.territory_id,
            }
            values.update(job_values)
            job = self.engine.create_in(
                conn, "job", values, actor,
                note=f"Created from request {request.request_number}",
            )
            self.engine.transition_in(
                conn, "request", request_id, "converted", actor,
                note=f"Converted directly to job {job.job_number}",
                converted_to_job_id=job.id,
            )
        return job

    # ── Quotes ──────────────────────────────────────────────────

    def _approval_fields(self, quote: Quote) -> dict:
        evaluation = evaluate_approval(quote, self.engine.thresholds)
        return {
            "requires_approval": int(evaluation.required),
            "approval_reason": evaluation.reason_text,
        }

    def create_quote(self, actor: Actor, **values) -> Quote:
        """Create a standalone draft quote (no originating request)."""
        _check_fields("quote", values)
        values.setdefault("payment_terms", Config.DEFAULT_PAYMENT_TERMS)
        values = price_quote({}, values)
        with self.engine.transaction("quote") as conn:
            quote = self.engine.create_in(
                conn, "quote", values, actor,
                managed_fields=self._approval_fields(Quote(**values)),
            )
        return quote

    def save_quote(self, quote_id: int, actor: Actor,
                   expected_version: Optional[int] = None,
                   **changes) -> Quote:
        """Edit a quote and re-run the approval gate."""
        with self.engine.transaction("quote", quote_id) as conn:
            quote = self.engine.get("quote", quote_id, conn=conn)
            if quote.status not in EDITABLE_QUOTE_STATUSES:
                raise ValueError(
                    f"Quote {quote.quote_number} is {quote.status}; only "
                    f"draft or returned quotes can be edited"
                )
            _check_fields("quote", changes)
            current = {k: getattr(quote, k) for k in _PRICING_INPUTS}
            values = price_quote(current, changes)
            candidate = replace(quote, **values)
            evaluation = evaluate_approval(candidate, self.engine.thresholds)
            quote = self.engine.update_in(
                conn, "quote", quote_id, values, expected_version,
                managed_fields=approval_fields_after_save(
                    candidate, evaluation, quote.approval_reasons,
                ),
            )
        logger.debug("Quote %s saved by %s", quote.quote_number, actor.name)
        return quote

    def request_quote_approval(self, quote_id: int, actor: Actor,
                               notes: Optional[str] = None) -> Quote:
        """Ask a manager to sign off; the engine marks approval pending."""
        fields = {"approval_notes": notes} if notes else {}
        return self.engine.apply_transition(
            "quote", quote_id, "pending_approval", actor,
            note=notes, **fields,
        )

    def approve_quote(self, quote_id: int, actor: Actor,
                      notes: Optional[str] = None,
                      expected_version: Optional[int] = None) -> Quote:
        """Manager sign-off. Does not change the quote's status."""
        if not actor.is_privileged:
            raise OverrideNotPermitted(actor.name, "approve quotes")
        with self.engine.transaction("quote", quote_id) as conn:
            quote = self.engine.get("quote", quote_id, conn=conn)
            if quote.status not in APPROVABLE_QUOTE_STATUSES:
                raise ValueError(
                    f"Quote {quote.quote_number} is {quote.status} and "
                    f"cannot be approved"
                )
            quote = self.engine.update_in(
                conn, "quote", quote_id, {"approval_notes": notes},
                expected_version,
                managed_fields={
                    "approval_status": "approved",
                    "approved_by": actor.name,
                    "approved_at": self.engine.timestamp(),
                },
            )
        logger.info("Quote %s approved by %s", quote.quote_number, actor.name)
        return quote

    def reject_quote_approval(self, quote_id: int, actor: Actor,
                              notes: Optional[str] = None) -> Quote:
        """Send a quote back to the rep; returns it to draft if pending."""
        if not actor.is_privileged:
            raise OverrideNotPermitted(actor.name, "reject quotes")
        rejection = {
            "approval_status": "rejected",
            "approved_by": None,
            "approved_at": None,
        }
        with self.engine.transaction("quote", quote_id) as conn:
            quote = self.engine.get("quote", quote_id, conn=conn)
            if quote.status == "pending_approval":
                return self.engine.transition_in(
                    conn, "quote", quote_id, "draft", actor,
                    note=notes or "Approval rejected",
                    managed_fields=rejection, approval_notes=notes,
                )
            return self.engine.update_in(
                conn, "quote", quote_id, {"approval_notes": notes},
                managed_fields=rejection,
            )

    def send_quote(self, quote_id: int, actor: Actor, method: str = "email",
                   to_email: Optional[str] = None,
                   expected_version: Optional[int] = None) -> Quote:
        _check_choice("send method", method, SEND_METHODS)
        return self.engine.apply_transition(
            "quote", quote_id, "sent", actor,
            expected_version=expected_version,
            sent_method=method, sent_to_email=to_email,
        )

    def mark_quote_viewed(self, quote_id: int, at=None) -> Quote:
        """Record the first time the client opened the quote."""
        quote = self.engine.get("quote", quote_id)
        if quote.viewed_at:
            return quote
        viewed_at = _as_text(at) or self.engine.timestamp()
        return self.engine.update_fields(
            "quote", quote_id, {"viewed_at": viewed_at},
        )

    def request_quote_changes(self, quote_id: int, actor: Actor,
                              notes: Optional[str] = None) -> Quote:
        return self.engine.apply_transition(
            "quote", quote_id, "changes_requested", actor, note=notes,
        )

    def accept_quote(self, quote_id: int, actor: Actor,
                     signature: Optional[str] = None,
                     po_number: Optional[str] = None) -> Quote:
        fields = {}
        if signature:
            fields["client_signature"] = signature
        if po_number:
            fields["client_po_number"] = po_number
        return self.engine.apply_transition(
            "quote", quote_id, "approved", actor,
            note="Accepted by client", **fields,
        )

    def mark_quote_lost(self, quote_id: int, actor: Actor, reason: str,
                        competitor: Optional[str] = None) -> Quote:
        return self.engine.apply_transition(
            "quote", quote_id, "lost", actor, note=reason,
            lost_reason=reason, lost_to_competitor=competitor,
        )

    def reopen_quote(self, quote_id: int, actor: Actor,
                     note: Optional[str] = None) -> Quote:
        return self.engine.apply_transition(
            "quote", quote_id, "draft", actor, note=note,
        )

    def convert_quote_to_job(self, quote_id: int, actor: Actor,
                             **job_values) -> Job:
        """Create a job from an accepted quote and mark it converted."""
        with self.engine.transaction("quote", quote_id) as conn:
            quote = self.engine.get("quote", quote_id, conn=conn)
            values = {
                "quote_id": quote.id,
                "request_id": quote.request_id,
                "project_id": quote.project_id,
                "client_id": quote.client_id,
                "community_id": quote.community_id,
                "property_id": quote.property_id,
                "job_address": quote.job_address,
                "product_type": quote.product_type,
                "linear_feet": quote.linear_feet,
                "description": quote.scope_summary,
                "quoted_total": quote.total,
                "assigned_rep_id": quote.sales_rep_id,
                "territory_id": quote.territory_id,
            }
            values.update(job_values)
            job = self.engine.create_in(
                conn, "job", values, actor,
                note=f"Won from quote {quote.quote_number}",
            )
            self.engine.transition_in(
                conn, "quote", quote_id, "converted", actor,
                note=f"Converted to job {job.job_number}",
                converted_to_job_id=job.id,
            )
        return job

    # ── Jobs ────────────────────────────────────────────────────

    def schedule_job(self, job_id: int, actor: Actor, scheduled_date,
                     crew_id: Optional[int] = None,
                     time_start: Optional[str] = None,
                     time_end: Optional[str] = None,
                     duration_hours: Optional[float] = None,
                     override: bool = False,
                     expected_version: Optional[int] = None) -> Job:
        """Put a won job on the calendar, optionally with a crew."""
        job = self.engine.get("job", job_id)
        if job.status not in SCHEDULABLE_JOB_STATUSES:
            raise ValueError(
                f"Job {job.job_number} is {job.status}; only won or "
                f"scheduled jobs can be scheduled"
            )
        day = _as_date(scheduled_date)
        fields = {"scheduled_date": day.isoformat()}
        if crew_id is not None:
            candidate = replace(job, scheduled_date=day.isoformat())
            result = self.engine.checker.can_assign("crew", crew_id,
                                                    candidate)
            self._enforce_feasibility(result, "crew", crew_id, "job",
                                      job_id, day, actor, override)
            fields["assigned_crew_id"] = crew_id
        if time_start is not None:
            fields["scheduled_time_start"] = time_start
        if time_end is not None:
            fields["scheduled_time_end"] = time_end
        if duration_hours is not None:
            fields["estimated_duration_hours"] = duration_hours

        if job.status == "scheduled":
            return self.engine.update_fields(
                "job", job_id, fields, expected_version,
            )
        return self.engine.apply_transition(
            "job", job_id, "scheduled", actor,
            note=f"Scheduled for {day.isoformat()}",
            expected_version=expected_version, **fields,
        )

    def advance_job(self, job_id: int, to_status: str, actor: Actor,
                    at=None, note: Optional[str] = None,
                    expected_version: Optional[int] = None) -> Job:
        """Record a yard or field scan moving a job to ``to_status``.

        ``at`` is the scan time when it differs from the engine clock.
        """
        fields = {}
        column = ENTRY_STAMPS.get(to_status)
        if at is not None and column:
            fields[column] = _as_text(at)
        return self.engine.apply_transition(
            "job", job_id, to_status, actor, note=note,
            expected_version=expected_version, **fields,
        )

    def complete_job(self, job_id: int, actor: Actor,
                     photos: Optional[list] = None,
                     signature: Optional[str] = None,
                     notes: Optional[str] = None, at=None) -> Job:
        fields = {}
        if photos:
            fields["completion_photos"] = json.dumps(list(photos))
        if signature:
            fields["completion_signature"] = signature
        if notes:
            fields["completion_notes"] = notes
        if at is not None:
            fields["work_completed_at"] = _as_text(at)
        return self.engine.apply_transition(
            "job", job_id, "completed", actor, **fields,
        )

    # ── Invoices ────────────────────────────────────────────────

    def create_invoice_from_job(self, job_id: int, actor: Actor,
                                subtotal: Optional[float] = None,
                                tax_rate: Optional[float] = None,
                                po_number: Optional[str] = None,
                                billing_address: Optional[str] = None
                                ) -> Invoice:
        """Bill a completed job and move it to ``requires_invoicing``."""
        with self.engine.transaction("job", job_id) as conn:
            job = self.engine.get("job", job_id, conn=conn)
            if job.invoice_id is not None:
                raise ValueError(f"Job {job.job_number} is already invoiced")
            quote = None
            if job.quote_id is not None:
                quote = self.repo.get_entity("quote", job.quote_id, conn=conn)

            if subtotal is None and quote is None:
                total = round(job.quoted_total or 0, 2)
                amounts = {"subtotal": total, "tax_rate": 0.0,
                           "tax_amount": 0.0, "discount_amount": 0.0,
                           "total": total}
            elif subtotal is None:
                amounts = {"subtotal": quote.subtotal,
                           "tax_rate": quote.tax_rate,
                           "tax_amount": quote.tax_amount,
                           "discount_amount": quote.discount_amount,
                           "total": quote.total}
            else:
                rate = tax_rate if tax_rate is not None else (
                    quote.tax_rate if quote else 0.0)
                tax = round(subtotal * rate / 100, 2)
                amounts = {"subtotal": subtotal, "tax_rate": rate,
                           "tax_amount": tax, "discount_amount": 0.0,
                           "total": round(subtotal + tax, 2)}

            today = self.engine.now().date()
            values = dict(amounts)
            values.update({
                "job_id": job.id,
                "quote_id": job.quote_id,
                "project_id": job.project_id,
                "client_id": job.client_id,
                "billing_address": billing_address or job.job_address,
                "invoice_date": today.isoformat(),
                "due_date": (today + timedelta(
                    days=Config.INVOICE_DUE_DAYS)).isoformat(),
                "payment_terms": (quote.payment_terms if quote else None)
                or Config.DEFAULT_PAYMENT_TERMS,
                "po_number": po_number
                or (quote.client_po_number if quote else None),
            })
            invoice = self.engine.create_in(
                conn, "invoice", values, actor,
                note=f"Created from job {job.job_number}",
                managed_fields={"amount_paid": 0.0,
                                "balance_due": amounts["total"]},
            )
            self.engine.transition_in(
                conn, "job", job_id, "requires_invoicing", actor,
                note=f"Invoiced as {invoice.invoice_number}",
                invoice_id=invoice.id,
            )
        return invoice

    def send_invoice(self, invoice_id: int, actor: Actor,
                     method: str = "email",
                     to_email: Optional[str] = None) -> Invoice:
        _check_choice("send method", method, SEND_METHODS)
        return self.engine.apply_transition(
            "invoice", invoice_id, "sent", actor,
            sent_method=method, sent_to_email=to_email,
            sync_status="pending",
        )

    def record_payment(self, invoice_id: int, amount: float, actor: Actor,
                       method: str = "check",
                       reference: Optional[str] = None,
                       payment_date=None, notes: Optional[str] = None,
                       external_payment_id: Optional[str] = None
                       ) -> Invoice:
        """Apply a payment; a payment clearing the balance marks it paid."""
        amount = round(float(amount), 2)
        if amount <= 0:
            raise PaymentRejected(invoice_id, "amount must be positive")
        if method not in PAYMENT_METHODS:
            raise PaymentRejected(invoice_id, f"unknown method {method!r}")

        with self.engine.transaction("invoice", invoice_id) as conn:
            invoice = self.engine.get("invoice", invoice_id, conn=conn)
            if invoice.status not in PAYABLE_INVOICE_STATUSES:
                raise PaymentRejected(
                    invoice_id, f"invoice is {invoice.status}",
                )
            if amount > invoice.balance_due + 0.005:
                raise PaymentRejected(
                    invoice_id,
                    f"{amount:.2f} exceeds balance {invoice.balance_due:.2f}",
                )
            self.repo.insert_payment(conn, Payment(
                invoice_id=invoice_id,
                amount=amount,
                payment_method=method,
                reference_number=reference,
                payment_date=_as_text(payment_date)
                or self.engine.now().date().isoformat(),
                notes=notes,
                external_payment_id=external_payment_id,
                recorded_by=actor.name,
            ))
            paid = round(invoice.amount_paid + amount, 2)
            balance = round(invoice.total - paid, 2)
            if balance <= 0.005:
                invoice = self.engine.transition_in(
                    conn, "invoice", invoice_id, "paid", actor,
                    note=f"Paid in full ({method})",
                    managed_fields={"amount_paid": paid, "balance_due": 0.0},
                )
            else:
                invoice = self.engine.update_in(
                    conn, "invoice", invoice_id, {},
                    managed_fields={"amount_paid": paid,
                                    "balance_due": balance},
                )
        logger.info("Payment of %.2f on invoice %s by %s",
                    amount, invoice.invoice_number, actor.name)
        return invoice

    def write_off_invoice(self, invoice_id: int, actor: Actor,
                          reason: Optional[str] = None) -> Invoice:
        return self.engine.apply_transition(
            "invoice", invoice_id, "bad_debt", actor, note=reason,
        )

    def mark_invoice_synced(self, invoice_id: int, external_invoice_id: str,
                            at=None) -> Invoice:
        """Record a successful push to the accounting system."""
        invoice = self.engine.get("invoice", invoice_id)
        if invoice.status == "draft":
            raise ValueError("Draft invoices are not synced")
        return self.engine.update_fields("invoice", invoice_id, {
            "external_invoice_id": external_invoice_id,
            "sync_status": "synced",
            "synced_at": _as_text(at) or self.engine.timestamp(),
            "sync_error": None,
        })

    def mark_invoice_sync_failed(self, invoice_id: int,
                                 error: str) -> Invoice:
        logger.warning("Invoice %s failed to sync: %s", invoice_id, error)
        return self.engine.update_fields("invoice", invoice_id, {
            "sync_status": "error",
            "sync_error": error,
        })

"""Legal status moves for each workflow entity.

The tables are built once at import and exposed read-only. An empty target
set marks a terminal status; ``REOPEN_EDGES`` lists the moves out of a
terminal-looking status that exist purely to undo an archive or a loss.
"""

from types import MappingProxyType

from fence_flow.utils.constants import JOB_STATUSES, STATUSES_BY_ENTITY


def _freeze(table: dict) -> MappingProxyType:
    return MappingProxyType(
        {status: frozenset(targets) for status, targets in table.items()}
    )


REQUEST_TRANSITIONS = _freeze({
    "pending": {"assessment_scheduled", "converted", "archived"},
    "assessment_scheduled": {
        "assessment_today", "assessment_completed", "archived",
    },
    "assessment_today": {"assessment_completed", "assessment_overdue"},
    "assessment_overdue": {"assessment_completed", "archived"},
    "assessment_completed": {"converted", "archived"},
    "converted": set(),
    "archived": {"pending"},
})

QUOTE_TRANSITIONS = _freeze({
    "draft": {"pending_approval", "sent", "lost"},
    "pending_approval": {"sent", "draft", "lost"},
    "sent": {"follow_up", "changes_requested", "approved", "lost"},
    "follow_up": {"sent", "changes_requested", "approved", "lost"},
    "changes_requested": {"draft", "sent", "lost"},
    "approved": {"converted", "lost"},
    "converted": set(),
    "lost": {"draft"},
})


def _linear_with_corrections(chain: list[str], closed: int) -> dict:
    """Forward edge per step, plus one backward edge for every step
    before index ``closed``.
    """
    table = {status: set() for status in chain}
    for i, status in enumerate(chain[:-1]):
        table[status].add(chain[i + 1])
    for i in range(1, closed):
        table[chain[i]].add(chain[i - 1])
    return table


# completed and requires_invoicing cannot be walked back
JOB_TRANSITIONS = _freeze(
    _linear_with_corrections(JOB_STATUSES, JOB_STATUSES.index("completed"))
)

INVOICE_TRANSITIONS = _freeze({
    "draft": {"sent"},
    "sent": {"past_due", "paid", "bad_debt"},
    "past_due": {"paid", "bad_debt"},
    "paid": set(),
    "bad_debt": set(),
})

TRANSITIONS = MappingProxyType({
    "request": REQUEST_TRANSITIONS,
    "quote": QUOTE_TRANSITIONS,
    "job": JOB_TRANSITIONS,
    "invoice": INVOICE_TRANSITIONS,
})

REOPEN_EDGES = MappingProxyType({
    "request": frozenset({("archived", "pending")}),
    "quote": frozenset({("lost", "draft")}),
    "job": frozenset(),
    "invoice": frozenset(),
})


def _table(entity_type: str) -> MappingProxyType:
    try:
        return TRANSITIONS[entity_type]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity_type!r}") from None


def _check_status(entity_type: str, status: str):
    if status not in STATUSES_BY_ENTITY[entity_type]:
        raise ValueError(f"Unknown {entity_type} status: {status!r}")


def can_transition(entity_type: str, from_status: str,
                   to_status: str) -> bool:
    table = _table(entity_type)
    _check_status(entity_type, from_status)
    _check_status(entity_type, to_status)
    return to_status in table[from_status]


def legal_next_states(entity_type: str, current_status: str) -> list[str]:
    """Statuses reachable in one move, in the entity's canonical order."""
    table = _table(entity_type)
    _check_status(entity_type, current_status)
    targets = table[current_status]
    return [s for s in STATUSES_BY_ENTITY[entity_type] if s in targets]


def terminal_statuses(entity_type: str) -> list[str]:
    """Statuses with no way out other than a reopen edge."""
    table = _table(entity_type)
    reopen_sources = {src for src, _ in REOPEN_EDGES[entity_type]}
    return [
        s for s in STATUSES_BY_ENTITY[entity_type]
        if not table[s] or s in reopen_sources
    ]


def reopen_edges(entity_type: str) -> frozenset:
    _table(entity_type)
    return REOPEN_EDGES[entity_type]


def is_reopen(entity_type: str, from_status: str, to_status: str) -> bool:
    return (from_status, to_status) in reopen_edges(entity_type)

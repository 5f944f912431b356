"""Application configuration. Loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "fence_flow.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )
    EXPORT_PATH: Path = Path(
        os.getenv("EXPORT_PATH", str(_PROJECT_ROOT / "data" / "exports"))
    )

    # Quote approval gate (settings.json overrides .env)
    QUOTE_TOTAL_THRESHOLD: float = float(_runtime.get(
        "quote_total_threshold",
        os.getenv("QUOTE_TOTAL_THRESHOLD", "25000"),
    ))
    MARGIN_MINIMUM: float = float(_runtime.get(
        "margin_minimum",
        os.getenv("MARGIN_MINIMUM", "15"),
    ))
    DISCOUNT_MAXIMUM: float = float(_runtime.get(
        "discount_maximum",
        os.getenv("DISCOUNT_MAXIMUM", "10"),
    ))

    # Time-based status refresh
    QUOTE_FOLLOW_UP_DAYS: int = int(_runtime.get(
        "quote_follow_up_days",
        os.getenv("QUOTE_FOLLOW_UP_DAYS", "3"),
    ))

    # Yard staging window (days before scheduled_date)
    YARD_LEAD_DAYS: int = int(_runtime.get(
        "yard_lead_days",
        os.getenv("YARD_LEAD_DAYS", "2"),
    ))

    # Billing
    DEFAULT_PAYMENT_TERMS: str = _runtime.get(
        "default_payment_terms",
        os.getenv("DEFAULT_PAYMENT_TERMS", "Net 30"),
    )
    INVOICE_DUE_DAYS: int = int(_runtime.get(
        "invoice_due_days",
        os.getenv("INVOICE_DUE_DAYS", "30"),
    ))

    # Document numbering
    REQUEST_NUMBER_PREFIX: str = _runtime.get(
        "request_number_prefix",
        os.getenv("REQUEST_NUMBER_PREFIX", "REQ"),
    )
    QUOTE_NUMBER_PREFIX: str = _runtime.get(
        "quote_number_prefix",
        os.getenv("QUOTE_NUMBER_PREFIX", "Q"),
    )
    JOB_NUMBER_PREFIX: str = _runtime.get(
        "job_number_prefix",
        os.getenv("JOB_NUMBER_PREFIX", "JOB"),
    )
    INVOICE_NUMBER_PREFIX: str = _runtime.get(
        "invoice_number_prefix",
        os.getenv("INVOICE_NUMBER_PREFIX", "INV"),
    )

    DEFAULT_STATE: str = os.getenv("DEFAULT_STATE", "TX")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_approval_thresholds(cls, quote_total: float,
                                   margin_minimum: float,
                                   discount_maximum: float):
        """Update the quote approval thresholds and persist to disk."""
        cls.QUOTE_TOTAL_THRESHOLD = quote_total
        cls.MARGIN_MINIMUM = margin_minimum
        cls.DISCOUNT_MAXIMUM = discount_maximum

        settings = _load_settings()
        settings["quote_total_threshold"] = quote_total
        settings["margin_minimum"] = margin_minimum
        settings["discount_maximum"] = discount_maximum
        _save_settings(settings)

    @classmethod
    def update_schedule_settings(cls, follow_up_days: int,
                                 yard_lead_days: int):
        """Update follow-up and yard staging windows and persist."""
        cls.QUOTE_FOLLOW_UP_DAYS = follow_up_days
        cls.YARD_LEAD_DAYS = yard_lead_days

        settings = _load_settings()
        settings["quote_follow_up_days"] = follow_up_days
        settings["yard_lead_days"] = yard_lead_days
        _save_settings(settings)

    @classmethod
    def update_billing_settings(cls, payment_terms: str, due_days: int):
        """Update invoice defaults and persist."""
        cls.DEFAULT_PAYMENT_TERMS = payment_terms
        cls.INVOICE_DUE_DAYS = due_days

        settings = _load_settings()
        settings["default_payment_terms"] = payment_terms
        settings["invoice_due_days"] = due_days
        _save_settings(settings)

    @classmethod
    def update_number_prefixes(cls, request: str, quote: str,
                               job: str, invoice: str):
        """Update document number prefixes and persist."""
        cls.REQUEST_NUMBER_PREFIX = request
        cls.QUOTE_NUMBER_PREFIX = quote
        cls.JOB_NUMBER_PREFIX = job
        cls.INVOICE_NUMBER_PREFIX = invoice

        settings = _load_settings()
        settings["request_number_prefix"] = request
        settings["quote_number_prefix"] = quote
        settings["job_number_prefix"] = job
        settings["invoice_number_prefix"] = invoice
        _save_settings(settings)

    @classmethod
    def approval_thresholds(cls) -> dict:
        """Current approval thresholds keyed by reason code."""
        from fence_flow.utils.constants import (
            THRESHOLD_DISCOUNT_MAXIMUM,
            THRESHOLD_MARGIN_MINIMUM,
            THRESHOLD_QUOTE_TOTAL,
        )
        return {
            THRESHOLD_QUOTE_TOTAL: cls.QUOTE_TOTAL_THRESHOLD,
            THRESHOLD_MARGIN_MINIMUM: cls.MARGIN_MINIMUM,
            THRESHOLD_DISCOUNT_MAXIMUM: cls.DISCOUNT_MAXIMUM,
        }

"""End-of-session reconciliation of static structure and runtime state."""

from tracecov.reconcile.patchup import ReconciliationReport, reconcile

__all__ = ["ReconciliationReport", "reconcile"]

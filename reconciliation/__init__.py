"""Reconciliation - request classification and stock drift planning."""

from reconciliation.engine import RequestReconciler
from reconciliation.drift import match_warehouse, plan_drift_movements, reconcile_drift

__all__ = [
    "RequestReconciler",
    "match_warehouse",
    "plan_drift_movements",
    "reconcile_drift",
]

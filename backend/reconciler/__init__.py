"""
Sports data reconciliation core.
Matches scraped records against a reference source and reports every field
discrepancy that no scoped mapping rule (equivalence, tolerance, ignore) explains.
"""
from reconciler.engine import ReconciliationEngine

__all__ = ["ReconciliationEngine"]

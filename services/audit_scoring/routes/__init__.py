"""
Audit Scoring Routes
====================

API route handlers for the Audit Scoring Service.
"""

from services.audit_scoring.routes import audits, evaluations, weights


__all__ = ["audits", "evaluations", "weights"]

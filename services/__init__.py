"""
Services
========

Microservices of the audit platform.

Services:
- audit_scoring: Evaluation scoring, section weights and audit aggregates
"""

__all__ = [
    "audit_scoring",
]

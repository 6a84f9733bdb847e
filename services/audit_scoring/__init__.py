"""
Audit Scoring Service
=====================

Scores control framework audits (ISO 27001, COBIT, ...):

- Leaf controls are evaluated against a maturity scale
- Parent sections average the scores of their children
- The audit total is the weighted mean of its top-level sections

Version: 0.1.0
"""

__version__ = "0.1.0"

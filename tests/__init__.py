"""
Audit Scoring Test Suite
========================

Test organization:
- tests/unit/                    - Settings and logging (no database)
- tests/services/audit_scoring/  - Engine math, locks, service and API
                                   (SQLite via aiosqlite)

Run tests:
    pytest                                 # All tests
    pytest tests/unit                      # Unit tests only
    pytest tests/services/audit_scoring    # Scoring service tests
"""

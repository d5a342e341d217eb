"""
BuildLedger - Source Package

Project and budget tracking core for a construction company dashboard.

DESIGN PRINCIPLES:
1. A project's budget only moves together with a ledger entry
2. The ledger is append-only
3. Fail early, fail visibly (check locally before touching the store)
4. Every change is attributed to an actor
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "BuildLedger Team"

"""
Ledger - Source Package

Client-side core of a small multi-tenant ledger: authenticated users record
financial transactions, administrators see and manage everyone's.

DESIGN PRINCIPLES:
1. Session state is derived, never stored
2. Unverified users cannot add transactions
3. Non-admins only ever touch their own rows
4. The in-memory list is always a fresh copy of backend truth
5. Backend is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Team"

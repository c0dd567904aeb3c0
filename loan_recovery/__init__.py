"""
Loan Recovery Case Engine

Multi-tenant case lifecycle and reconciliation engine for loan recovery teams:
spreadsheet import, auto-routing to telecallers, assignment, call logging
and a monotonic payment ledger.
"""

__version__ = "1.0.0"

"""
recordsync - staged reconciliation of spreadsheet extracts into a master record set.

Periodic invoice and quote extracts are normalized, staged, and reconciled
by identity key against a persistent master set, keeping the follow-up notes
users attach to records that survive from one extract to the next.
"""

__version__ = "1.0.0"

"""
Utilities for Record Sync

Correlation IDs, logging configuration and the Vault client.
"""

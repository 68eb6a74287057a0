"""Ledger module — annual and compensatory leave balances and their journal."""

"""Intranet approvals: document workflow and leave ledgers."""

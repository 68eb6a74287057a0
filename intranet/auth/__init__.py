"""Caller identity extracted from bearer tokens."""

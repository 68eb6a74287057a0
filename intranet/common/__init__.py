"""Shared building blocks: enums, exceptions, audit trail, locking, paging."""

"""Shared repository layer for the vrc-ban backend."""

from .audit_log import AuditLogRepository, AuditLogStore

__all__ = [
    "AuditLogRepository",
    "AuditLogStore",
]

"""Audit logging package."""

from farmledger.audit.logger import AuditLogger

__all__ = ["AuditLogger"]

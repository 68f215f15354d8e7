"""
Audit trail recording for the eSawitKu API.
"""

from .recorder import AuditEntry, AuditRecorder

__all__ = ["AuditEntry", "AuditRecorder"]

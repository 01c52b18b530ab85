"""
NetAudit - Network Discovery & Service Audit
"""

__version__ = "1.0.0"

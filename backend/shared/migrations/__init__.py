"""SQL migrations for the audit-log store."""

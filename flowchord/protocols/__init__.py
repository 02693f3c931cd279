"""Protocol integrations used by node handlers."""

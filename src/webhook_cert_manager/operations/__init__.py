"""Certificate sync operations for webhook configurations."""

"""Identity-system integrations."""

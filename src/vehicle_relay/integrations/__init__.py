"""External vendor integrations."""

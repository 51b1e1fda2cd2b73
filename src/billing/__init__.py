"""Contract consumption and renewal accounting."""

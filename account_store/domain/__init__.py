"""Domain model of user accounts."""

"""Domain events and their publisher."""

"""club-data: data-access core for club management."""

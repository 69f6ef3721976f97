"""Static matching configuration tables."""

"""Graph analysis over NetworkX."""

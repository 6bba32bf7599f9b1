"""taskforest: a user-scoped task forest stored as a flat entity table plus an edge table."""

__version__ = "0.1.0"

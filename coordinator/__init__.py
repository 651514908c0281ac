"""coordinator - Coordination trigger engine for project activity nudges."""

__version__ = "0.1.0"

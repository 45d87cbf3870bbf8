"""Command-line interface (``mastery``)."""

"""
Command-line interface for astraops.

Entry point: ``astraops`` (see ``pyproject.toml``).
"""

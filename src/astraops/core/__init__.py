"""
Core primitives shared by every astraops layer.

Tags:
    astraops, core, logging, errors, settings, events
"""

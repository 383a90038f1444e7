"""
Shared helpers: errors, logging and image references.
"""

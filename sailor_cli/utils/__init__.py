"""
Shared helpers for formatting sizes and building paths and magnet links.
"""

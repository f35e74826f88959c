"""
Command-line Interface Layer.

This package contains the Typer application and the Rich renderers used to
display search results, downloads and the library.
"""

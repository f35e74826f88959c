"""
sailor-cli: search a torrent index, download through aria2c and keep a library.
"""

__version__ = "0.3.0"

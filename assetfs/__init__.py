"""
assetfs.

Embeds a tree of files into a generated Python module and exposes them
through a read-only filesystem interface.
"""

__version__ = "0.1.0"

"""
Thoughtlands: resolve free-text concepts into regions of related notes.

The package combines AI tag suggestion, vocabulary validation against the
vault's real tags, and embedding similarity filtering backed by a
content-addressed embedding cache.
"""

__version__ = "0.3.0"

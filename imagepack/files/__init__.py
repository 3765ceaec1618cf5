"""Filesystem primitives: path patterns, attribute-preserving file
operations and archive handling."""

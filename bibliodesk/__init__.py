"""
Bibliography desk core package.

This package currently focuses on opening database files. It exposes
dataclasses for parse results and open outcomes, the encoding sniffer,
the advisory lock coordinator, the autosave resolver, a pluggable parsing
engine interface, the post-open action chain, and the batch orchestrator
that drives each file through its open session.
"""

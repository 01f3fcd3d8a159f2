"""
hostsmerge package - hosts blocklist builder

Modules:
    cache_utils: Archive of fetched source bodies and their validators
    fetch_sources: Sequential source fetching with validator probes and archive fallback
    normalize: Raw list text to domain tokens
    merge: Aggregation and whitelist filtering
    emit: Sorted hosts-file rendering
    pipeline: Main processing pipeline and CLI
"""

__version__ = "1.0.0"

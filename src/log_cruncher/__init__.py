"""
log_cruncher: dictionary-encoded access-log store and reports.

Fastly access logs are ingested into deduplicating dictionary tables and an
append-only request fact table, then read back through a normalization
join and a chain of filters to produce aggregate reports.
"""

__version__ = "0.1.0"

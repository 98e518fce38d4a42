"""
Gateway client package for IP/user-agent enrichment and list lookups.
"""

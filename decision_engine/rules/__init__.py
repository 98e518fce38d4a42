"""
Rule evaluation: campaign membership, whitelisting, exclusive groups
and the flag decision pipeline.
"""

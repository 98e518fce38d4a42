"""
Data models for the decision engine.

- settings: pydantic models for the settings snapshot (features,
  campaigns, variations, groups).
- builder: validates raw settings and prepares the snapshot (ranges,
  linked campaigns, gateway flag).
- context: per-request user context and the stable user UUID.
- decision: sticky assignments, flag results, decision traces and
  outbound events.
"""

"""
Event dispatch package.

Provides the EventSink contract, an in-memory sink and an HTTP sink
for exposure, goal and visitor-attribute events.
"""

"""
Risk Intelligence — external events correlated to risks.

Components:
- lifecycle: alert state machine and MAX aggregation of suggested deltas (pure)
- manager: accept / reject / apply / undo / batch operations
- classifier: external relevance classifier client (httpx)
- scanner: event ingestion with dedup, unchecked events × open risks
- resilience: retry with backoff + circuit breaker for the classifier
"""

"""
Cross-cutting request middleware.

Execution order (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    - Rate limit rejects abusive clients before any other work.
    - Request ID is set before logging so access lines carry it.
"""

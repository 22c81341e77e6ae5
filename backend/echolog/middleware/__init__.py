"""
EchoLog Backend — Middleware Package
======================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Rate Limit] → [Access Log] → [GZip] → [CORS] → Route

    - Request ID is outermost so every response, including 429s, carries X-Request-ID
    - Rate-limited requests are rejected before they reach logging or the routes
"""

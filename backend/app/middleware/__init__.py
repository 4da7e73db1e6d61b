"""
DocBridge Backend — Middleware Package
========================================

Middleware Chain:
    Request → [Request ID] → [Access Log] → [CORS] → Route Handler

    Request ID runs first so every log line of the request, including the
    access log entry, can carry the same correlation id.
"""

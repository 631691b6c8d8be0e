"""
Ledger API — Middleware Package
================================

What:  The request-processing pipeline applied to every request.

Middleware Chain (outermost first):
    Request → [CORS] → [GZip] → [Request ID] → [Envelope] → [Logging] → [Rate Limit] → [Guard] → Router

    1. Request ID: creates the RequestContext (correlation id + start time)
    2. Envelope:   reshapes whatever JSON the inner stack produced
    3. Logging:    start line, redacted body, completion line
    4. Rate Limit: rejects over-limit clients before any route work
    5. Guard:      413 for oversize bodies before they are read; router
                   failures rendered as error envelopes inside the chain

    Starlette runs middleware in REVERSE order of registration, so main.py
    adds them innermost-first.
"""

# Routes package init
"""
Ledger API — API Routes Package
================================

Route Inventory:
    - auth.py:        POST /api/auth/register
                      POST /api/auth/login
                      GET  /api/auth/validate
    - operations.py:  POST /api/operations
                      GET  /api/operations
                      GET  /api/operations/{operation_id}
    - health.py:      GET  /api/healthcheck

Routes are thin: parse the request, call a service, return a model.
Failures are raised, never caught here; the error mapper turns them into
responses and the envelope middleware wraps every JSON body.
"""

# Services package init
"""
Ledger API — Services Layer
============================

What:  Business logic between routes (HTTP) and the database.
How:   Services receive the request's AsyncSession, apply the rules and
       raise LedgerError subclasses on failure. They never build HTTP
       responses.

Service Inventory:
    - AuthService: register, login, token validation
    - OperationService: create, list and fetch buy/sell operations
"""

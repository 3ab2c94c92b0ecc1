"""
v1 routes.

    status       — GET /api/status, /api/status/{city}, /api/locations
    history      — GET /api/history
    subscribers  — GET/PUT/DELETE /api/subscribers
    operations   — POST /api/test/send, POST /api/cycle
"""

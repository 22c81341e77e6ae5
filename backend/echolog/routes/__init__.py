"""
EchoLog Backend — API Routes Package
======================================

Route Inventory:
    - auth.py:            /api/auth/google, /api/auth/verify
    - audio.py:           /api/audio/upload, /api/audio/{identifier}
    - transcriptions.py:  /api/transcribe[...]
    - analysis.py:        /api/analyze[...]
    - dashboard.py:       /api/dashboard/stats, /api/dashboard/history
    - billing.py:         /api/billing/costs
    - health.py:          /health

Routes handle HTTP only (read the request, call one service, shape the
response). Every /api route except auth/google and the signed audio link
(/api/audio/signed/{name}?token=...) requires a bearer token.
"""

"""
DocBridge Backend — API Routes Package
========================================

Route Inventory:
    - auth.py:    GET  /auth/url, GET /auth/callback       (Google sign-in)
    - sheets.py:  GET  /drive/files, POST /sheets/read,
                  POST /sheets/write                      (Drive / Sheets proxy)
    - pdf.py:     POST /pdf/create, /pdf/extract, /pdf/add-text
    - files.py:   GET  /files/{id}[/{name}], DELETE /files/{id}
    - health.py:  GET  /health

Routes stay thin: parse the request, call a service, shape the response.
Errors propagate as DocBridgeError subclasses to the handlers in main.py.
"""

"""
DocBridge Backend — Services Layer
====================================

Service Inventory:
    - ObjectStore (object_store.py): ephemeral file storage with timed expiry
    - ExpiryScheduler (expiry.py): deadline heap behind the store's expiry loop
    - pdf_service: create / extract text / add text, on raw bytes
    - GoogleWorkspaceService + TokenStore (google_service.py): OAuth2, Drive, Sheets

Services raise app.exceptions types and know nothing about HTTP.
"""

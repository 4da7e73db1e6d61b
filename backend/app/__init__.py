"""
DocBridge Backend — Application Package
=========================================

Layers:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services                    │  ← object store, PDF, Google proxy
    ├─────────────────────────────────────┤
    │   Local disk  /  Google APIs        │
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"

"""
Rescan Backend
==============

What:  Recycling symbol scanner API with an address points ledger.
How:   Layered architecture:
       routes (HTTP) → services (business logic) → models (ORM) → database

Layers:
    - config.py:      Settings loaded from environment / .env
    - database.py:    Database handle (engine + session factory + transactions)
    - exceptions.py:  Application exception hierarchy mapped to HTTP codes
    - models/:        SQLAlchemy ORM models (Address, ScanRecord)
    - schemas/:       Pydantic request/response models
    - services/:      Ledger, vision, file storage and upload orchestration
    - routes/:        FastAPI routers
    - middleware/:    Request ID, access logging, rate limiting
"""

__version__ = "1.0.0"

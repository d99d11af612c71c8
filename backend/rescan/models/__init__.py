"""
ORM models for the points ledger.

Importing this package registers every table on `Base.metadata`, which both
`Database.create_schema()` and Alembic rely on.
"""

from rescan.models.address import Address
from rescan.models.scan_record import ScanRecord

__all__ = ["Address", "ScanRecord"]

"""
Rescan Backend — API Routes Package
====================================

Route Inventory:
    - addresses.py:  GET   /api/address/lookup        (does an address exist?)
                     POST  /api/address               (register an address)
                     PATCH /api/address/points        (administrative credit)
                     GET   /api/address               (leaderboard)
                     GET   /api/address/scans         (scan history for an address)
    - scans.py:      POST  /api/scan/upload           (photo → material → points)
                     POST  /api/scans                 (manual identification)
                     GET   /api/scans/statistics      (ledger aggregates)
                     GET   /api/scans/{id}            (single scan record)
                     PATCH /api/scans/{id}/feedback   (user verdict on a scan)
                     GET   /api/files/{path}          (stored scan photos)
    - materials.py:  GET   /api/materials             (RIC catalog)
                     GET   /api/materials/{code}
    - health.py:     GET   /health

Routes stay thin: extract request data, call the ledger or scan service,
shape the response. Errors propagate to the handlers registered in main.py.
"""

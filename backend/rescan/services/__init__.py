"""
Business logic layer.

    ledger.py          LedgerCoordinator: the only writer of the points ledger
    address_store.py   Address lookup/creation and atomic point increments
    scan_recorder.py   Append-only scan log, feedback and statistics
    scan_service.py    Upload orchestration (file → vision → ledger)
    vision_base.py     VisionService interface
    gemini_service.py  Gemini provider with retry and circuit breaker
    mock_vision.py     Deterministic provider for keyless classrooms
    file_service.py    Upload validation and storage
    materials.py       RIC catalog and educational content
"""

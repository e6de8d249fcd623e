"""Application services."""

from playlistgen.application.services.reconciliation_service import (
    ReconciliationService,
    is_unchanged,
)

__all__ = ["ReconciliationService", "is_unchanged"]

"""
Pydantic schemas for YieldSync.

Used by services and collaborators (CLI, HTTP layer) to exchange asset data
without leaking ORM rows.

**Organization by Domain**:
- assets.py: Profile and persisted record schemas (FAProfile, FAAssetRecord)
- reconcile.py: Reconciliation and search envelopes

**Naming Conventions**:
- FA prefix: Financial Assets (equities, digital assets)

**Design Notes**:
- All models use Pydantic v2 with strict validation (extra="forbid")
"""
from yieldsync.app.schemas.assets import (
    FAProfile,
    FAAssetRecord,
    )
from yieldsync.app.schemas.reconcile import (
    FADisplacedRecord,
    FAReconcileResult,
    FAProfileResponse,
    FASearchResponse,
    )

__all__ = [
    "FAProfile",
    "FAAssetRecord",
    "FADisplacedRecord",
    "FAReconcileResult",
    "FAProfileResponse",
    "FASearchResponse",
    ]

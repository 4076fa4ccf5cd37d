"""
Reconciliation & Search result schemas.

This module holds the envelopes returned by the reconciliation engine
(onboarding, refresh, profile-by-id) and by the throttled search engine.
Collaborators (HTTP layer, CLI) render these; they never see ORM rows.

**Naming Conventions**:
- FA prefix: Financial Assets

**Design Notes**:
- Partial collision resolution is a successful result with a flag and
  warnings, never an exception
- external_results in FASearchResponse is empty whenever the query throttle
  skipped the external lookup (observable signal for callers and tests)
"""
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from yieldsync.app.schemas.assets import FAAssetRecord, FAProfile


# ============================================================================
# RECONCILIATION SECTION
# ============================================================================

class FADisplacedRecord(BaseModel):
    """A record that lost its symbol during collision resolution."""
    model_config = ConfigDict(extra="forbid")

    stable_id: str = Field(..., description="Stable id of the displaced record")
    previous_symbol: str = Field(..., description="Symbol it held before being demoted")
    new_symbol: str = Field(..., description="Symbol after re-identification ('0' if unresolved)")
    resolved: bool = Field(..., description="Whether the record was re-identified")


class FAReconcileResult(BaseModel):
    """Outcome of process_new_asset / refresh_asset."""
    model_config = ConfigDict(extra="forbid")

    record: FAAssetRecord = Field(..., description="Record state after reconciliation")
    symbol_changed: bool = Field(False, description="Symbol drift detected and applied")
    previous_symbol: Optional[str] = Field(None, description="Symbol before the call (None for new records)")
    collision_found: bool = Field(False, description="Another record held the symbol")
    collision_resolved: bool = Field(False, description="Every displaced record was re-identified")
    collision_partially_resolved: bool = Field(
        False,
        description="Symbol was freed but at least one displaced record stayed unknown"
        )
    displaced: List[FADisplacedRecord] = Field(default_factory=list, description="Records demoted by this call")
    warnings: List[str] = Field(default_factory=list, description="Soft warnings (non-fatal)")


class FAProfileResponse(BaseModel):
    """Profile-by-id flow result (local lookup, onboarding or refresh)."""
    model_config = ConfigDict(extra="forbid")

    asset: FAProfile = Field(..., description="Canonical profile")
    processed_unknown_asset: bool = Field(False, description="Asset was onboarded by this call")
    refresh_performed: bool = Field(False, description="Asset was stale and got refreshed")
    collision_found: bool = Field(False, description="Refresh repaired another record too")
    collision_partially_resolved: bool = Field(False, description="A displaced record stayed unknown")
    warnings: List[str] = Field(default_factory=list, description="Soft warnings")


# ============================================================================
# SEARCH SECTION
# ============================================================================

class FASearchResponse(BaseModel):
    """Throttled search result: local matches merged with external augmentation."""
    model_config = ConfigDict(extra="forbid")

    query: str = Field(..., description="Normalized query")
    matches: List[FAProfile] = Field(default_factory=list, description="Local matches (capped)")
    external_results: List[FAProfile] = Field(
        default_factory=list,
        description="Raw provider results (not filtered by venue); empty if throttled"
        )
    external_lookup_performed: bool = Field(False, description="Provider search was called")
    external_error: Optional[str] = Field(None, description="Provider error message, local results still returned")

"""
Asset profile schemas.

**Domain Coverage**:
- FAProfile: Canonical profile shape exchanged with providers and collaborators
- FAAssetRecord: Persisted asset (profile + optimistic-concurrency version)

**Design Notes**:
- Providers return FAProfile regardless of the upstream payload shape, the
  `kind` tag selects equity vs digital-asset semantics
- Store operations return detached FAAssetRecord objects, never ORM rows
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from yieldsync.app.db.models import AssetKind, SYMBOL_UNKNOWN


class FAProfile(BaseModel):
    """Canonical instrument profile.

    stable_id is the durable identity (ISIN or coin id), symbol is only the
    current trading symbol and may be SYMBOL_UNKNOWN ("0").
    """
    model_config = ConfigDict(extra="forbid")

    stable_id: str = Field(..., min_length=1, description="ISIN (equity) or platform coin id (digital asset)")
    kind: AssetKind = Field(..., description="Asset kind (EQUITY or DIGITAL_ASSET)")
    symbol: str = Field(..., min_length=1, description="Current trading symbol ('0' = unknown)")
    name: Optional[str] = Field(None, description="Display name")
    venue: Optional[str] = Field(None, description="Exchange (equity) or platform/chain (digital asset)")
    sector: Optional[str] = Field(None, description="Sector")
    industry: Optional[str] = Field(None, description="Industry")
    last_refreshed_at: Optional[datetime] = Field(None, description="Last successful external reconciliation")

    @field_validator('symbol')
    @classmethod
    def symbol_strip(cls, v: str) -> str:
        """Strip whitespace around the symbol."""
        return v.strip()

    @property
    def has_live_symbol(self) -> bool:
        """True when symbol is a real trading symbol (not the unknown sentinel)."""
        return self.symbol != SYMBOL_UNKNOWN


class FAAssetRecord(FAProfile):
    """Persisted asset record as returned by AssetStore."""
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    version: int = Field(1, ge=1, description="Optimistic-concurrency version")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last write timestamp")

    def to_profile(self) -> FAProfile:
        """Drop storage-only fields."""
        return FAProfile(**self.model_dump(include=set(FAProfile.model_fields)))

    def with_profile(self, profile: FAProfile, refreshed_at: datetime) -> "FAAssetRecord":
        """
        Apply an external profile on top of this record.

        stable_id, kind and version are kept from the record (identity and
        concurrency fields never come from the provider). last_refreshed_at
        never moves backwards.

        Args:
            profile: Authoritative profile from the provider
            refreshed_at: Reconciliation timestamp

        Returns:
            New FAAssetRecord (self is not modified)
        """
        if self.last_refreshed_at is not None and self.last_refreshed_at > refreshed_at:
            refreshed_at = self.last_refreshed_at
        return self.model_copy(update={
            "symbol": profile.symbol,
            "name": profile.name,
            "venue": profile.venue,
            "sector": profile.sector,
            "industry": profile.industry,
            "last_refreshed_at": refreshed_at,
            })

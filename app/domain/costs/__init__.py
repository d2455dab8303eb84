"""Static cost tables (fee tiers, impact profiles)."""

"""Archive and codec adapters."""

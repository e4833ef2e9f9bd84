"""Location-aware obituary feeds."""

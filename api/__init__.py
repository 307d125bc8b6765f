"""api/ -- HTTP layer for HealthTrack. Imports from auth/, records/, and core/."""

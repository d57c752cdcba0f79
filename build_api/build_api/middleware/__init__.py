"""HTTP middleware for the build API."""

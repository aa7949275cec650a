"""HTTP API for the timebill engine."""

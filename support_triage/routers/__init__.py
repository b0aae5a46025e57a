"""HTTP routers for the triage service."""

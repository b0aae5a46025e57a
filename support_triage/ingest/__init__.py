"""Inbound message orchestration."""

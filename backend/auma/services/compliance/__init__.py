"""SAFE Act classification, escalation ledger and orchestration."""

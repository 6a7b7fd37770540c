"""Operational scripts (Stripe sync, development seed data)."""

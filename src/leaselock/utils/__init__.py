"""Shared helpers for leaselock."""

"""Bounded-concurrency statistics batch engine."""

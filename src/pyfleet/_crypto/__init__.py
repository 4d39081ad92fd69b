"""Digest helpers for tamper-evident records."""

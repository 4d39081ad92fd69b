"""State/store layer.

The single source of truth for everything the dashboard has fetched or
observed. Snapshot fetches, the three change streams and local writes all
reach the state only as actions applied through :func:`reduce`.
"""

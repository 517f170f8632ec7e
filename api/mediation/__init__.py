"""
Generic request mediation: query parsing, CRUD/batch operations, and
their HTTP surface.
"""

"""
Permission management feature module.

Role / resource / action grants, their resolution into per-request
abilities, and ownership scoping of row queries.
"""

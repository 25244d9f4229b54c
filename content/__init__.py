"""content/ -- Content item operations and the append-only audit log.

Layer rule: content/ imports from core/ and proxy/. It does NOT import from
api/ or auth/.
"""

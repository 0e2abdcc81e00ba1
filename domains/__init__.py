"""domains/ -- Resource services (users, roles, repositories) and the repository cache.

Layer rule: domains/ may import from auth/ and core/. It does NOT import from
api/. api/ imports from domains/, not the other way around.
"""

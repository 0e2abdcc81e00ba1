"""auth/ -- Authentication and authorization package for CommitStreams.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or domains/.
api/ and domains/ import from auth/, not the other way around.
"""

"""auth/ -- Authentication and authorization package for Roo Ranking.

Layer rule: auth/ imports only core/, stdlib, and third-party libraries.
It does NOT import from api/ or festival/.
api/ and festival/ import from auth/, not the other way around.
"""

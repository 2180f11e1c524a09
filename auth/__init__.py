"""auth/ -- Authentication and authorization core for identity-core.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ (auth/dependencies.py only imports fastapi).
api/ imports from auth/, not the other way around.
"""

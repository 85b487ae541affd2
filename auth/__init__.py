"""auth/ -- Session token and cookie package for KeyRelay.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or relay/.
api/ and relay/ import from auth/, not the other way around.
"""

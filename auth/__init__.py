"""auth/ -- Identity, sessions and role policy for TeamDesk.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/, access/, audit/, or tracker/.
api/ and access/ import from auth/, not the other way around.
"""

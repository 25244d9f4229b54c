"""auth/ -- Identity resolution, sessions and user persistence for the gateway.

Layer rule: auth/ imports only core/ plus stdlib and third-party libraries.
It does NOT import from api/, content/, proxy/, or cache/.
api/ imports from auth/, not the other way around.
"""

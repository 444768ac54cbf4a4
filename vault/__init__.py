"""vault/ -- Secret vault subsystem for KeyShelf.

Layer rule: vault/ imports only stdlib, third-party libraries, core/ and
auth/models + auth/store. It does NOT import from api/.
api/ imports from vault/, not the other way around.
"""

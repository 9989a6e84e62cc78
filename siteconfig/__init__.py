"""siteconfig/ -- Key/value site settings with public and private groups.

Layer rule: siteconfig/ imports only stdlib, third-party libraries, core/ and
the shared engine helpers in auth/store.py. It does NOT import from api/.
"""

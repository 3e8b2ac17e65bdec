"""auth/ -- Authentication and authorization engine for Gatehouse.

Layer rule: auth/ imports from core/ and directory/ + third-party libraries.
Nothing in core/ or directory/ imports from auth/.
"""

"""directory/ -- Tenant, group, and user repositories for Gatehouse.

Layer rule: directory/ imports only core/ + third-party libraries.
It does NOT import from auth/. auth/ imports from directory/, not the other
way around.
"""

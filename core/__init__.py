"""core/ -- Kernel for Gatehouse: settings, models, schema, results, errors.

Layer rule: core/ imports only stdlib + third-party libraries. directory/ and
auth/ import from core/, never the other way around.
"""

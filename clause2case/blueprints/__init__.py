"""
Clause2Case
Blueprint registry.
"""

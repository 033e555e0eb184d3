"""
Protected resources gated by authentication state and role.
"""

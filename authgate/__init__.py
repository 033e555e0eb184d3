"""
authgate: bearer-token authentication service.

Registers accounts, authenticates credentials, issues signed JWTs carrying
identity and role claims, and gates endpoints by authentication state and role.
"""

__version__ = "0.1.0"

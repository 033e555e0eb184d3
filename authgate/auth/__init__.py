"""
Authentication microservice for authgate.

This module provides authentication and authorization services:
- User registration and login
- JWT token issuance and validation
- Pluggable credential storage and password hashing
- Role-based access control
"""

"""
Luna CRM backend - authentication, sessions and record ownership.
"""

__version__ = "0.1.0"

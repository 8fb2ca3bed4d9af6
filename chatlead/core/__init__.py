"""
Core utilities shared across the ChatLead API.

This package hosts configuration, logging setup and the credential hasher.
Services depend on these primitives instead of reading os.environ or
importing hashing libraries directly.
"""

"""
Persistence adapters.

Services depend on the Record Store interface (insert, delete by id, select
one by equality) rather than on SQLAlchemy sessions.
"""

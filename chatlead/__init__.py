"""ChatLead API: client onboarding and login.

The ASGI app is built by ``chatlead.app.create_app``.
"""

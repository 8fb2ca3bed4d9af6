"""
High-level use cases for the ChatLead API.

Each service orchestrates the identity provider and the record store to
implement one business flow (onboarding, login). Collaborators are passed in
at construction; routers fetch the configured instances from ``app.state``.
"""

"""Domain managers for the sync server.

Managers encapsulate store access and business rules.  They raise domain
exceptions (``WorkspaceNotFoundError``, ``ValueError``), never HTTP
exceptions -- that translation is the router's responsibility.
"""

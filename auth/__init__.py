"""
auth — request-time OAuth validation.

Provides:
  • ``AuthGuard`` — merges request and stored credentials, checks expiry
    against the buffer window and refreshes transparently
  • helpers that read tokens / user keys from headers and bodies and
    expose a refreshed token back to the caller
"""

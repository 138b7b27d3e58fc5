"""
connectors — OAuth token lifecycle.

Handles:
  • Authorization-code exchange (``/oauth/callback``)
  • Token refresh, explicit (``/oauth/refresh``) or via the AuthGuard
  • Per-user credential storage behind the ``CredentialStore`` interface
  • Fernet encryption of secrets at rest (SQL store)
  • Revocation / session removal
"""

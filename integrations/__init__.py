"""
integrations — per-user OAuth credentials and token exchange.

Provides:
  • AES-256-GCM encryption of client secrets and tokens at rest
  • Signed, expiring (single-use) OAuth state tokens with PKCE
  • A data-driven registry of platform endpoints and quirks
  • Code exchange / refresh / revocation over pluggable transports
  • Connect / callback / status / disconnect API routes

Each user registers their own OAuth application per platform under
Settings; nothing here reads client credentials from the environment.
"""

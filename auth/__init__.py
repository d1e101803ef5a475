"""
auth — dashboard user authentication.

Provides:
  • HMAC-signed session tokens (cookie or Bearer header)
  • bcrypt password hashing
  • Register / Login API routes
  • ``get_current_user_id`` FastAPI dependency
"""

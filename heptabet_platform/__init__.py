"""Heptabet subscription tips platform - Backend.

Predictions and blog posts are gated behind paid subscription tiers:
- Sessions are stateless JWTs held in an httpOnly cookie.
- State-changing requests carry a per-account CSRF secret.
- Tier access is decided per content item at read time.

See DESIGN.md for the module map.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"

"""Auth-facing alias for the ``User`` model.

The table lives in ``agricert.models.user`` so the model registry can load
it without importing the auth package.
"""

from agricert.models.user import User

__all__ = ["User"]

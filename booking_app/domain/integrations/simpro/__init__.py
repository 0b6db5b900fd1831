"""
SimPro Integration

OAuth-authenticated REST client for SimPro field-service builds, plus the
storage glue that keeps the organization's encrypted tokens current.
"""

from .client import SimproClient
from .tokens import get_simpro_client_for_organization

__all__ = ["SimproClient", "get_simpro_client_for_organization"]

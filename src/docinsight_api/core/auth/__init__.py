from .errors import AuthenticationError
from .principal import AuthenticatedPrincipal, principal_from_claims

__all__ = ["AuthenticatedPrincipal", "AuthenticationError", "principal_from_claims"]

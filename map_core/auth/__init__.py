from .models import Account, Identity
from .tokens import TokenAuthority

__all__ = ["Account", "Identity", "TokenAuthority"]

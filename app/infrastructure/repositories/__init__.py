from .base import BaseRepository, TenantScopeRequiredError

__all__ = ["BaseRepository", "TenantScopeRequiredError"]

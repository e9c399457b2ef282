"""Repository layer for persisted pipeline state."""

from monitra.repositories.locator_repository import DomainLocatorStore, domain_from_url

__all__ = ["DomainLocatorStore", "domain_from_url"]

"""Domain policy modules."""

from incubus.domain.policies.marketplace import MarketplacePolicy
from incubus.domain.policies.organization_access import OrganizationAccessPolicy
from incubus.domain.policies.reviews import ReviewPolicy

__all__ = ["MarketplacePolicy", "OrganizationAccessPolicy", "ReviewPolicy"]

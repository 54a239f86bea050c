"""Infrastructure repositories."""

from incubus.infrastructure.repositories.admin_repository import AdminRepository
from incubus.infrastructure.repositories.audit_repository import AuditRepository
from incubus.infrastructure.repositories.auth_repository import AuthRepository
from incubus.infrastructure.repositories.blockchain_repository import (
    BlockchainRepository,
    WalletRepository,
)
from incubus.infrastructure.repositories.bundle_repository import BundleRepository
from incubus.infrastructure.repositories.catalog_repository import (
    PublisherRepository,
    TaxonomyRepository,
)
from incubus.infrastructure.repositories.game_repository import GameFilters, GameRepository
from incubus.infrastructure.repositories.marketplace_repository import (
    ListingFilters,
    MarketplaceRepository,
)
from incubus.infrastructure.repositories.notification_repository import NotificationRepository
from incubus.infrastructure.repositories.organization_repository import OrganizationRepository
from incubus.infrastructure.repositories.review_repository import ReviewRepository
from incubus.infrastructure.repositories.staff_repository import StaffRepository
from incubus.infrastructure.repositories.wishlist_repository import WishlistRepository

__all__ = [
    "AdminRepository",
    "AuditRepository",
    "AuthRepository",
    "BlockchainRepository",
    "BundleRepository",
    "GameFilters",
    "GameRepository",
    "ListingFilters",
    "MarketplaceRepository",
    "NotificationRepository",
    "OrganizationRepository",
    "PublisherRepository",
    "ReviewRepository",
    "StaffRepository",
    "TaxonomyRepository",
    "WalletRepository",
    "WishlistRepository",
]

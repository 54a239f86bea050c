"""Application services."""

from incubus.application.services.admin_service import AdminService
from incubus.application.services.audit_service import AuditService
from incubus.application.services.auth_service import AuthService
from incubus.application.services.blockchain_service import BlockchainService, WalletService
from incubus.application.services.bootstrap_service import BootstrapService
from incubus.application.services.bundle_service import BundleService
from incubus.application.services.catalog_service import PublisherService, TaxonomyService
from incubus.application.services.game_service import GameService
from incubus.application.services.maintenance_service import MaintenanceService
from incubus.application.services.marketplace_service import MarketplaceService
from incubus.application.services.notification_service import NotificationService
from incubus.application.services.organization_service import OrganizationService
from incubus.application.services.player_service import PlayerService
from incubus.application.services.review_service import ReviewService
from incubus.application.services.staff_service import StaffService
from incubus.application.services.user_service import UserService
from incubus.application.services.wishlist_service import WishlistService

__all__ = [
    "AdminService",
    "AuditService",
    "AuthService",
    "BlockchainService",
    "BootstrapService",
    "BundleService",
    "GameService",
    "MaintenanceService",
    "MarketplaceService",
    "NotificationService",
    "OrganizationService",
    "PlayerService",
    "PublisherService",
    "ReviewService",
    "StaffService",
    "TaxonomyService",
    "UserService",
    "WalletService",
    "WishlistService",
]

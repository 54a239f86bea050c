"""ORM model imports."""

from incubus.infrastructure.db.models.auth import Account, User, UserSession
from incubus.infrastructure.db.models.audit import AuditLog
from incubus.infrastructure.db.models.blockchain import (
    Blockchain,
    GameLicense,
    ItemOwnership,
    ItemTransaction,
    LicenseTransaction,
    Transaction,
    Wallet,
)
from incubus.infrastructure.db.models.catalog import (
    Bundle,
    BundleGame,
    Developer,
    Game,
    GameDeveloper,
    GameGenre,
    GameItem,
    GameTag,
    GameVersion,
    Genre,
    Publisher,
    Review,
    ReviewVote,
    Tag,
    WishlistItem,
)
from incubus.infrastructure.db.models.marketplace import MarketplaceListing
from incubus.infrastructure.db.models.notifications import InboxEntry, Notification
from incubus.infrastructure.db.models.organizations import (
    Invitation,
    Member,
    Organization,
)
from incubus.infrastructure.db.models.staff import (
    PlatformStaff,
    Player,
    PlayerGame,
    PublisherStaff,
)

__all__ = [
    "User",
    "Account",
    "UserSession",
    "AuditLog",
    "PlatformStaff",
    "PublisherStaff",
    "Player",
    "PlayerGame",
    "Publisher",
    "Developer",
    "Genre",
    "Tag",
    "Game",
    "GameGenre",
    "GameTag",
    "GameDeveloper",
    "GameVersion",
    "GameItem",
    "Bundle",
    "BundleGame",
    "Review",
    "ReviewVote",
    "WishlistItem",
    "Organization",
    "Member",
    "Invitation",
    "Blockchain",
    "Wallet",
    "Transaction",
    "GameLicense",
    "LicenseTransaction",
    "ItemOwnership",
    "ItemTransaction",
    "MarketplaceListing",
    "Notification",
    "InboxEntry",
]

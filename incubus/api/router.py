from fastapi import APIRouter

from incubus.api.routes import (
    admin,
    auth,
    blockchains,
    bundles,
    developers,
    games,
    genres,
    marketplace,
    navigation,
    notifications,
    organizations,
    platform_staff,
    players,
    publisher_staff,
    publishers,
    system,
    tags,
    users,
    wallets,
    wishlist,
)

api_router = APIRouter()
api_router.include_router(system.router, prefix="/system", tags=["system"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(navigation.router, prefix="/navigation", tags=["navigation"])
api_router.include_router(
    platform_staff.router,
    prefix="/platform-staff",
    tags=["platform-staff"],
)
api_router.include_router(
    publisher_staff.router,
    prefix="/publisher-staff",
    tags=["publisher-staff"],
)
api_router.include_router(players.router, prefix="/players", tags=["players"])
api_router.include_router(genres.router, prefix="/genres", tags=["genres"])
api_router.include_router(tags.router, prefix="/tags", tags=["tags"])
api_router.include_router(developers.router, prefix="/developers", tags=["developers"])
api_router.include_router(publishers.router, prefix="/publishers", tags=["publishers"])
api_router.include_router(games.router, prefix="/games", tags=["games"])
api_router.include_router(bundles.router, prefix="/bundles", tags=["bundles"])
api_router.include_router(
    organizations.router,
    prefix="/organizations",
    tags=["organizations"],
)
api_router.include_router(blockchains.router, prefix="/blockchains", tags=["blockchains"])
api_router.include_router(wallets.router, prefix="/wallets", tags=["wallets"])
api_router.include_router(marketplace.router, prefix="/marketplace", tags=["marketplace"])
api_router.include_router(wishlist.router, prefix="/wishlist", tags=["wishlist"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])

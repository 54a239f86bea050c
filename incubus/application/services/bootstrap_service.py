from __future__ import annotations

import logging

from incubus.core.config import get_settings
from incubus.core.database import get_session
from incubus.domain.roles import UserRole
from incubus.infrastructure.repositories.auth_repository import AuthRepository
from incubus.infrastructure.repositories.blockchain_repository import BlockchainRepository

logger = logging.getLogger(__name__)

DEFAULT_BLOCKCHAINS = (
    {
        "name": "Ethereum",
        "chain_id": 1,
        "rpc_url": "https://ethereum-rpc.publicnode.com",
        "explorer_url": "https://etherscan.io",
        "currency_symbol": "ETH",
        "is_default": True,
    },
    {
        "name": "Polygon",
        "chain_id": 137,
        "rpc_url": "https://polygon-rpc.com",
        "explorer_url": "https://polygonscan.com",
        "currency_symbol": "POL",
        "is_default": False,
    },
)


class BootstrapService:
    def __init__(self):
        self.settings = get_settings()

    async def run(self) -> None:
        async with get_session() as session:
            repo = AuthRepository(session)
            for email in sorted(self.settings.admin_emails):
                user = await repo.get_user_by_email(email)
                if user is not None and user.role != UserRole.ADMIN:
                    await repo.update(user, role=UserRole.ADMIN.value)
                    logger.info("Promoted seeded admin user_id=%s", user.id)

            if self.settings.INCUBUS_SEED_BLOCKCHAINS:
                chains = BlockchainRepository(session)
                for values in DEFAULT_BLOCKCHAINS:
                    if await chains.get_by_chain_id(values["chain_id"]) is None:
                        await chains.create(is_active=True, **values)
                        logger.info("Seeded blockchain %s", values["name"])

        logger.info("Bootstrap seed completed")

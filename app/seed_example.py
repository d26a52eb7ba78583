import asyncio
import logging

from app.auth import Principal, Role
from app.logging_config import configure_logging
from app.security.passwords import hash_password
from app.services import product_service, provider_service
from app.services.inventory_store import InventoryStore, UserRecord
from app.services.store_factory import get_inventory_store

logger = logging.getLogger(__name__)

DEMO_PASSWORD = 'change-me'

DEMO_USERS = [
    ('admin@bar.example', 'Admin', Role.ADMIN),
    ('manager@bar.example', 'Floor Manager', Role.MANAGER),
    ('bartender@bar.example', 'Bartender', Role.BARTENDER),
    ('guest@bar.example', 'Guest', Role.GUEST),
]

DEMO_PROVIDERS = [
    {'companyName': 'Distribuidora Central', 'contactPerson': 'Laura Mendez', 'phone': '555-0101'},
    {'companyName': 'Northside Wines', 'contactPerson': 'Sam Ortiz', 'email': 'orders@northside.example'},
]

DEMO_PRODUCTS = [
    {'name': 'Old No. 7', 'brand': "Jack Daniel's", 'category': 'whisky', 'stock': 12, 'salePrice': 35, 'purchasePrice': 22, 'barcode': '7501234567890'},
    {'name': 'Blue Label', 'brand': 'Johnnie Walker', 'category': 'whisky', 'stock': 2, 'salePrice': 250, 'purchasePrice': 180, 'important': True},
    {'name': 'London Dry', 'brand': 'Tanqueray', 'category': 'gin', 'stock': 6, 'salePrice': 28, 'purchasePrice': 17},
    {'name': 'Reposado', 'brand': 'Don Julio', 'category': 'tequila', 'stock': 0, 'salePrice': 48, 'purchasePrice': 31},
    {'name': 'Malbec Reserva', 'brand': 'Catena', 'category': 'wine', 'stock': 10, 'salePrice': 22, 'purchasePrice': 12},
    {'name': 'Lager', 'brand': 'Corona', 'category': 'beer', 'unit': 'box', 'stock': 8, 'salePrice': 30, 'purchasePrice': 20, 'sku': 'CRN-24'},
]


async def seed_store(store: InventoryStore) -> None:
    for email, display_name, role in DEMO_USERS:
        if await store.find_user(email) is None:
            await store.save_user(
                UserRecord(
                    email=email,
                    display_name=display_name,
                    role=role,
                    password_hash=hash_password(DEMO_PASSWORD),
                )
            )

    admin = Principal(email=DEMO_USERS[0][0], display_name=DEMO_USERS[0][1], role=Role.ADMIN)
    providers = await store.list_providers()
    if not providers:
        for data in DEMO_PROVIDERS:
            providers.append(await provider_service.save_provider(store, admin, data))

    if await store.load_products():
        logger.info('seed skipped products: inventory already populated')
        return
    for index, data in enumerate(DEMO_PRODUCTS):
        payload = {**data, 'providerId': providers[index % len(providers)].id}
        await product_service.create_product(store, admin, payload)
    logger.info('seeded users=%s providers=%s products=%s', len(DEMO_USERS), len(providers), len(DEMO_PRODUCTS))


def seed() -> None:
    configure_logging()
    asyncio.run(seed_store(get_inventory_store()))


if __name__ == '__main__':
    seed()

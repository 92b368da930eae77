"""Demo data for local runs: a couple of Terrassa users and listings."""
from datetime import timedelta

from wallaplus.shared.models import Category, Listing, Neighborhood, Review, User
from wallaplus.shared.models.chat import utcnow
from .store import MarketplaceStore, avatar_url


def seed_demo_data(store: MarketplaceStore) -> None:
    now = utcnow()

    marc = User(
        id="u1",
        name="Marc T.",
        email="marc@terrassa.cat",
        avatar=avatar_url("Marc T"),
        rating=4.8,
        location="Terrassa, Centre",
        verified=True,
        joined_at=now - timedelta(days=30),
    )
    laura = User(
        id="u2",
        name="Laura G.",
        email="laura@gmail.com",
        avatar=avatar_url("Laura G"),
        rating=5.0,
        location="Terrassa, Ca n'Aurell",
        verified=True,
        joined_at=now - timedelta(days=60),
    )

    store.load(
        users=[marc, laura],
        listings=[
            Listing(
                id="l1",
                seller_id=laura.id,
                title="Trona IKEA Antilop",
                description="Trona usada pero en buen estado. Incluye la bandeja.",
                price=10,
                category=Category.NINOS.value,
                neighborhood=Neighborhood.CA_N_AURELL.value,
                likes=4,
                created_at=now - timedelta(minutes=2),
            ),
            Listing(
                id="l2",
                seller_id=marc.id,
                title="Mesita de noche madera",
                description="Mesita vintage restaurada. Queda muy bien en habitación pequeña.",
                price=35,
                category=Category.HOGAR.value,
                neighborhood=Neighborhood.CENTRE.value,
                likes=8,
                created_at=now - timedelta(minutes=13),
            ),
        ],
        reviews=[
            Review(
                id="r1",
                reviewer_id=laura.id,
                target_user_id=marc.id,
                rating=5,
                comment="Quedamos en la Rambla y todo perfecto. Muy puntual.",
                created_at=now - timedelta(hours=1),
            ),
        ],
    )

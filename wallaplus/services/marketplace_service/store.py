"""In-memory marketplace store: users, listings and reviews.

One store per process, passed by reference; mutations notify subscribers
so open views can refresh.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence, Union

from wallaplus.services.chat_service.errors import Unauthenticated, ValidationError
from wallaplus.services.chat_service.identity import IdentityProvider
from wallaplus.shared.models import (
    CITY,
    Category,
    Listing,
    ListingStatus,
    Neighborhood,
    Review,
    User,
)
from wallaplus.shared.utils import ChangeNotifier, hash_pii

logger = logging.getLogger(__name__)


# Filter value meaning "no filter", as sent by the browse screen
ALL = "Todos"


def _enum_value(value: Union[str, Category, Neighborhood, None]) -> Optional[str]:
    if isinstance(value, (Category, Neighborhood)):
        return value.value
    return value


def _member_value(enum_cls, value, label: str) -> str:
    """Value of an enum member given the member or its value; ValidationError otherwise."""
    if isinstance(value, enum_cls):
        return value.value
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationError(f"Unknown {label}: {value!r}") from None


def avatar_url(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={name.replace(' ', '+')}&background=0D9488&color=fff"


class MarketplaceStore:
    """Owns users, listings and reviews for the marketplace screens."""

    def __init__(self, identity: IdentityProvider):
        self.identity = identity
        self._users: Dict[str, User] = {}
        self._listings: Dict[str, Listing] = {}
        self._reviews: List[Review] = []
        self._lock = threading.RLock()
        self._notifier = ChangeNotifier("marketplace")

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._notifier.subscribe(listener)

    def _require_user(self) -> User:
        current = self.identity.current()
        if current is None:
            raise Unauthenticated("Sign in required")
        with self._lock:
            user = self._users.get(current.subject)
        if user is None:
            raise Unauthenticated("Unknown user")
        return user

    def load(
        self,
        users: Sequence[User] = (),
        listings: Sequence[Listing] = (),
        reviews: Sequence[Review] = (),
    ) -> None:
        """Bulk-load existing records as-is, without identity checks."""
        with self._lock:
            for user in users:
                self._users[user.id] = user
            for listing in listings:
                self._listings[listing.id] = listing
            self._reviews.extend(reviews)
        self._notifier.notify()

    # --- users ---

    def register(self, name: str, email: str, neighborhood: Union[str, Neighborhood]) -> User:
        """Create an unverified account located in one of the city's neighborhoods."""
        name = name.strip()
        email = email.strip()
        if not name or "@" not in email:
            raise ValidationError("Name and a valid email are required")
        neighborhood = _member_value(Neighborhood, neighborhood, "neighborhood")

        with self._lock:
            if self._find_by_email(email) is not None:
                raise ValidationError("Email already registered")
            user = User(
                name=name,
                email=email,
                avatar=avatar_url(name),
                location=f"{CITY}, {neighborhood}",
            )
            self._users[user.id] = user

        logger.info("USER_REGISTERED", extra={"user_id_hash": hash_pii(user.id)})
        self._notifier.notify()
        return user

    def login(self, email: str) -> Optional[User]:
        """Case-insensitive email lookup; None when unknown."""
        with self._lock:
            return self._find_by_email(email.strip())

    def _find_by_email(self, email: str) -> Optional[User]:
        wanted = email.lower()
        for user in self._users.values():
            if user.email.lower() == wanted:
                return user
        return None

    def user_profile(self, user_id: str) -> Optional[User]:
        """User with rating and review count computed from received reviews.

        A user without reviews keeps the stored rating.
        """
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            received = [r for r in self._reviews if r.target_user_id == user_id]

        rating = user.rating
        if received:
            rating = round(sum(r.rating for r in received) / len(received), 1)

        return User(
            id=user.id,
            name=user.name,
            email=user.email,
            location=user.location,
            avatar=user.avatar,
            rating=rating,
            review_count=len(received),
            verified=user.verified,
            joined_at=user.joined_at,
        )

    # --- listings ---

    def browse(
        self,
        search: Optional[str] = None,
        category: Union[str, Category, None] = None,
        neighborhood: Union[str, Neighborhood, None] = None,
    ) -> List[Listing]:
        """Unsold listings matching the filters, newest first.

        Args:
            search: Case-insensitive substring of title or description
            category: Category to keep; None or "Todos" keeps all
            neighborhood: Neighborhood to keep; None or "Todos" keeps all
        """
        category = _enum_value(category)
        neighborhood = _enum_value(neighborhood)

        with self._lock:
            result = [l for l in self._listings.values() if l.status != ListingStatus.SOLD]

        if search:
            q = search.lower()
            result = [l for l in result if q in l.title.lower() or q in l.description.lower()]
        if category and category != ALL:
            result = [l for l in result if l.category == category]
        if neighborhood and neighborhood != ALL:
            result = [l for l in result if l.neighborhood == neighborhood]

        return sorted(result, key=lambda l: l.created_at, reverse=True)

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        with self._lock:
            return self._listings.get(listing_id)

    def create_listing(
        self,
        title: str,
        description: str,
        price: float,
        category: Union[str, Category],
        neighborhood: Union[str, Neighborhood],
        images: Sequence[str] = (),
    ) -> Listing:
        """Publish a listing as the signed-in user."""
        seller = self._require_user()

        title = title.strip()
        if not title:
            raise ValidationError("Title is required")
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
            raise ValidationError("Price must be a non-negative number")
        category = _member_value(Category, category, "category")
        neighborhood = _member_value(Neighborhood, neighborhood, "neighborhood")

        listing = Listing(
            seller_id=seller.id,
            title=title,
            description=description.strip(),
            price=float(price),
            category=category,
            neighborhood=neighborhood,
            images=list(images),
        )
        with self._lock:
            self._listings[listing.id] = listing

        logger.info(
            "LISTING_CREATED",
            extra={"listing_id": listing.id, "seller_id_hash": hash_pii(seller.id)}
        )
        self._notifier.notify()
        return listing

    def buy(self, listing_id: str) -> bool:
        """Mark a listing sold. False if the listing does not exist."""
        with self._lock:
            listing = self._listings.get(listing_id)
            if listing is None:
                return False
            listing.status = ListingStatus.SOLD

        logger.info("LISTING_SOLD", extra={"listing_id": listing_id})
        self._notifier.notify()
        return True

    # --- reviews ---

    def add_review(self, target_user_id: str, rating: int, comment: str) -> Review:
        """Leave a 1-5 review for another user as the signed-in user."""
        reviewer = self._require_user()
        if reviewer.id == target_user_id:
            raise ValidationError("You cannot review yourself")
        with self._lock:
            if target_user_id not in self._users:
                raise ValidationError("Unknown user")

        try:
            review = Review(
                reviewer_id=reviewer.id,
                target_user_id=target_user_id,
                rating=rating,
                comment=comment.strip(),
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        with self._lock:
            self._reviews.insert(0, review)

        logger.info(
            "REVIEW_ADDED",
            extra={
                "review_id": review.id,
                "target_id_hash": hash_pii(target_user_id),
                "rating": rating,
            }
        )
        self._notifier.notify()
        return review

    def reviews_for(self, user_id: str) -> List[Review]:
        """Reviews received by a user, newest first."""
        with self._lock:
            received = [r for r in self._reviews if r.target_user_id == user_id]
        return sorted(received, key=lambda r: r.created_at, reverse=True)

"""Marketplace domain models: users, listings and reviews."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from .chat import new_id, utcnow


CITY = "Terrassa"


class ListingStatus(Enum):
    ACTIVE = "active"
    RESERVED = "reserved"
    SOLD = "sold"


class Neighborhood(Enum):
    """Terrassa neighborhoods a listing can be picked up in."""
    CENTRE = "Centre"
    CA_N_AURELL = "Ca n'Aurell"
    SANT_PERE = "Sant Pere"
    LA_MAURINA = "La Maurina"
    SANT_LLORENC = "Sant Llorenç"
    CAN_PARELLADA = "Can Parellada"
    CAN_JOFRESA = "Can Jofresa"
    ROC_BLANC = "Roc Blanc"


class Category(Enum):
    HOGAR = "Hogar"
    NINOS = "Niños y Bebés"
    ELECTRONICA = "Electrónica"


@dataclass
class User:
    name: str
    email: str
    location: str = CITY
    avatar: str = ""
    rating: float = 0.0
    review_count: int = 0
    verified: bool = False
    id: str = field(default_factory=new_id)
    joined_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "location": self.location,
            "rating": self.rating,
            "review_count": self.review_count,
            "verified": self.verified,
            "joined_at": self.joined_at.isoformat(),
        }


@dataclass
class Listing:
    seller_id: str
    title: str
    description: str
    price: float
    category: str
    neighborhood: str
    currency: str = "EUR"
    images: List[str] = field(default_factory=list)
    status: ListingStatus = ListingStatus.ACTIVE
    likes: int = 0
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "currency": self.currency,
            "category": self.category,
            "neighborhood": self.neighborhood,
            "images": list(self.images),
            "status": self.status.value,
            "likes": self.likes,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Review:
    """A rating left by one user for another after a deal."""
    reviewer_id: str
    target_user_id: str
    rating: int
    comment: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if isinstance(self.rating, bool) or not isinstance(self.rating, int) or not 1 <= self.rating <= 5:
            raise ValueError(f"Rating must be an integer 1-5, got {self.rating!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reviewer_id": self.reviewer_id,
            "target_user_id": self.target_user_id,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": self.created_at.isoformat(),
        }

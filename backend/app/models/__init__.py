"""Database models"""
from app.models.user import User, ViewerRole
from app.models.listing import Listing, ListingTier, ListingStatus
from app.models.match_suggestion import MatchSuggestion

__all__ = [
    "User",
    "ViewerRole",
    "Listing",
    "ListingTier",
    "ListingStatus",
    "MatchSuggestion",
]

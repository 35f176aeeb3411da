from marketplace.app.models.user import User
from marketplace.app.models.user_session import UserSession
from marketplace.app.models.login_attempt import LoginAttempt
from marketplace.app.models.product import Product, ProductImage
from marketplace.app.models.activity import RecentlyViewed, SearchHistory

__all__ = [
    "User",
    "UserSession",
    "LoginAttempt",
    "Product",
    "ProductImage",
    "RecentlyViewed",
    "SearchHistory",
]

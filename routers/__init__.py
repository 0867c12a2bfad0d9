# routers/__init__.py
from .inquiries import router as inquiries_router
from .properties import router as properties_router
from .reviews import router as reviews_router
from .users import router as users_router

__all__ = [
    "inquiries_router",
    "properties_router",
    "reviews_router",
    "users_router",
]

from app.models.category import Category
from app.models.transaction import Transaction

__all__ = [
    "Category",
    "Transaction",
]

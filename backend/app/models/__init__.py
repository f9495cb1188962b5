from app.models.user import User
from app.models.category import Category
from app.models.supplier import Supplier
from app.models.medicine import Medicine
from app.models.prescription import Prescription
from app.models.sale import Sale, SaleItem
from app.models.stock_movement import StockMovement
from app.models.identifier_sequence import IdentifierSequence

__all__ = [
    "User",
    "Category",
    "Supplier",
    "Medicine",
    "Prescription",
    "Sale",
    "SaleItem",
    "StockMovement",
    "IdentifierSequence",
]

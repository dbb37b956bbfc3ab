from .auth import User, SessionToken
from .catalog import Item, ITEM_STATUS_ACTIVE, ITEM_STATUS_RETURNED, ITEM_STATUSES
from .sales import Sale, SaleItem, SALE_STATUS_COMPLETED, SALE_STATUS_REFUNDED
from .cashflow import Partner, PartnerContribution, Expense

__all__ = [
    'User', 'SessionToken',
    'Item', 'ITEM_STATUS_ACTIVE', 'ITEM_STATUS_RETURNED', 'ITEM_STATUSES',
    'Sale', 'SaleItem', 'SALE_STATUS_COMPLETED', 'SALE_STATUS_REFUNDED',
    'Partner', 'PartnerContribution', 'Expense',
]

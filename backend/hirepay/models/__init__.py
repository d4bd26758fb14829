from .tenancy import Business, Shop, ShopPaymentChannel, BusinessPolicy, StaffMember
from .catalog import Product, ShopProduct
from .customers import Customer, WalletTransaction
from .purchases import Purchase, PurchaseItem, Payment
from .documents import Waybill, ProgressInvoice, PurchaseInvoice, DocumentSequence
from .audit import AuditEvent

__all__ = [
    'Business', 'Shop', 'ShopPaymentChannel', 'BusinessPolicy', 'StaffMember',
    'Product', 'ShopProduct',
    'Customer', 'WalletTransaction',
    'Purchase', 'PurchaseItem', 'Payment',
    'Waybill', 'ProgressInvoice', 'PurchaseInvoice', 'DocumentSequence',
    'AuditEvent',
]

from .tenancy import Shop
from .catalog import Product
from .queue import QueueToken, QueueTokenItem
from .sequences import QueueTokenSequence, DocumentSequence
from .sales import Sale, SaleLine
from .ledger import LedgerEvent
from .auth import User, SessionToken
from .security import SecurityEvent

__all__ = [
    'Shop', 'Product',
    'QueueToken', 'QueueTokenItem',
    'QueueTokenSequence', 'DocumentSequence',
    'Sale', 'SaleLine',
    'LedgerEvent',
    'User', 'SessionToken', 'SecurityEvent',
]

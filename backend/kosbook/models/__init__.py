from .auth import User, SessionToken
from .property import Property, Room
from .booking import Booking, Payment
from .ledger import LedgerAccount, LedgerEntry
from .payout import BankAccount, Payout

__all__ = [
    'User', 'SessionToken',
    'Property', 'Room',
    'Booking', 'Payment',
    'LedgerAccount', 'LedgerEntry',
    'BankAccount', 'Payout',
]

from .auth import User, Role, RolePermission, SessionToken
from .catalog import Section, SubSection, SectionClosure, TimeSlot, Product
from .reservations import Reservation, ProductMovement, MovementPhoto
from .credits import CreditTransaction
from .communications import Notification, NotificationPreference, AuditLog

__all__ = [
    'User', 'Role', 'RolePermission', 'SessionToken',
    'Section', 'SubSection', 'SectionClosure', 'TimeSlot', 'Product',
    'Reservation', 'ProductMovement', 'MovementPhoto',
    'CreditTransaction',
    'Notification', 'NotificationPreference', 'AuditLog',
]

"""
User roles enumeration.

Defines the account types known to the pricing backend.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.
    
    Roles:
        ADMIN: Manages vehicle pricing
        USER: Books rides
        DRIVER: Lists vehicles
        SYSTEM: Non-human service identity used to attribute automatic writes
    """
    ADMIN = "ADMIN"
    USER = "USER"
    DRIVER = "DRIVER"
    SYSTEM = "SYSTEM"

class LockerRentalException(Exception):
    pass


class LockerNotFoundException(LockerRentalException):
    def __init__(self, locker_id: str):
        super().__init__(f"Locker {locker_id} not found")
        self.locker_id = locker_id


class NotAvailableException(LockerRentalException):
    def __init__(self, locker_id: str, status: str):
        super().__init__(f"Locker {locker_id} is not available (status={status})")
        self.locker_id = locker_id
        self.status = status


class NotRentedException(LockerRentalException):
    def __init__(self, locker_id: str):
        super().__init__(f"Locker {locker_id} has no active rental")
        self.locker_id = locker_id


class InvalidTokenException(LockerRentalException):
    """Presented credential does not match the active rental.

    The message deliberately carries no locker state so an unauthorized
    caller learns nothing about the locker.
    """

    def __init__(self, locker_id: str):
        super().__init__("Invalid session token")
        self.locker_id = locker_id


class ActuationFailedException(LockerRentalException):
    def __init__(self, locker_id: str, locked: bool, reason: str = ""):
        action = "lock" if locked else "unlock"
        super().__init__(f"Lock controller did not confirm {action} of {locker_id}: {reason}")
        self.locker_id = locker_id
        self.locked = locked
        self.reason = reason


class CredentialExpiredException(LockerRentalException):
    def __init__(self, locker_id: str):
        super().__init__(f"Session credential for locker {locker_id} has expired")
        self.locker_id = locker_id


class PaymentDeclinedException(LockerRentalException):
    def __init__(self, locker_id: str, amount: int, reason: str = ""):
        super().__init__(f"Payment of {amount} for locker {locker_id} declined: {reason}")
        self.locker_id = locker_id
        self.amount = amount
        self.reason = reason

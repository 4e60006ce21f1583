# order_lifecycle/domain/errors.py
"""
Typed failures of the order lifecycle.

Callers branch on the class, never on the message text:
- ValidationError: bad input, nothing was written
- NotFoundError: unknown order / refund id
- PreconditionError: business rule rejection (window closed, wrong status...)
- PersistenceError: the store failed; ConcurrencyConflictError means a
  concurrent writer changed the order first and the call may be retried;
  RefundInitiationError carries the committed order whose refund failed
"""


class OrderLifecycleError(Exception):
    pass


class ValidationError(OrderLifecycleError):
    pass


class NotFoundError(OrderLifecycleError):
    pass


class PreconditionError(OrderLifecycleError):
    pass


class InvalidTransitionError(PreconditionError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order from '{current}' to '{requested}'")


class CancellationNotAllowedError(PreconditionError):
    def __init__(self, message: str = "Order cannot be cancelled at this stage"):
        super().__init__(message)


class CancellationWindowExpiredError(PreconditionError):
    def __init__(self, message: str = "Cancellation deadline has passed"):
        super().__init__(message)


class ModificationNotAllowedError(PreconditionError):
    def __init__(self, message: str = "Order cannot be modified at this stage"):
        super().__init__(message)


class ModificationWindowExpiredError(PreconditionError):
    def __init__(self, message: str = "Modification deadline has passed"):
        super().__init__(message)


class RefundStateError(PreconditionError):
    pass


class PersistenceError(OrderLifecycleError):
    pass


class ConcurrencyConflictError(PersistenceError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} was modified by another operation")


class RefundInitiationError(PersistenceError):
    """The order is cancelled and committed, but its refund could not be created."""

    def __init__(self, order):
        self.order = order
        self.order_id = order.id
        super().__init__(f"Order {order.id} was cancelled but its refund could not be initiated")

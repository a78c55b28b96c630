"""
Checkout and refund error taxonomy.

Each error carries the HTTP status the routes answer with and an optional
details dict naming the offending entity.
"""


class OrderError(Exception):
    """Base class for checkout/refund/edit failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class NoActiveShift(OrderError):
    def __init__(self, cashier_id: int):
        super().__init__(
            "No active shift. Please open a shift first.",
            details={"cashierId": cashier_id},
        )


class VariantNotFound(OrderError):
    def __init__(self, variant_id: int):
        super().__init__(f"Variant not found: {variant_id}", details={"variantId": variant_id})


class InsufficientStock(OrderError):
    def __init__(self, variant_id: int, name: str, requested: int, available: int):
        super().__init__(
            f"Stock not enough for {name}",
            details={"variantId": variant_id, "requested": requested, "available": available},
        )


class InsufficientPayment(OrderError):
    def __init__(self, paid: int, total: int):
        super().__init__("Paid amount is less than total", details={"paid": paid, "total": total})


class CustomerRequired(OrderError):
    def __init__(self):
        super().__init__("Customer is required for deposit payment")


class CustomerNotFound(OrderError):
    def __init__(self, customer_id: int):
        super().__init__("Customer not found", details={"customerId": customer_id})


class OrderNotFound(OrderError):
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__("Order not found", details={"orderId": order_id})


class AlreadyRefunded(OrderError):
    def __init__(self, order_id: int):
        super().__init__("Order already refunded", details={"orderId": order_id})


class OrderCancelled(OrderError):
    def __init__(self, order_id: int):
        super().__init__("Order is cancelled", details={"orderId": order_id})


class OrderNotEditable(OrderError):
    def __init__(self, order_id: int, status: str):
        super().__init__(
            "Cannot edit a refunded/cancelled order",
            details={"orderId": order_id, "status": status},
        )


class CheckoutFailed(OrderError):
    status_code = 409


class RefundFailed(OrderError):
    status_code = 409

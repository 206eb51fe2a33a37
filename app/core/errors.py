class PurchaseError(Exception):
    """Base class for account purchase errors. `message` is safe to show to the user."""

    default_message = "Something went wrong with your purchase."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidPlan(PurchaseError):
    default_message = "Unknown account plan."


class InvalidAmount(PurchaseError):
    default_message = "Amount must be a non-negative number."


class InvalidPhoneNumber(PurchaseError):
    default_message = "Please enter a valid M-Pesa phone number (e.g. 0712345678)."


class InvalidTransition(PurchaseError):
    """The requested step is not allowed from the current lifecycle state."""

    default_message = "That action is not available right now."


class PaymentInProgress(InvalidTransition):
    default_message = "A payment is already in progress."


class GatewayError(PurchaseError):
    default_message = "Payment gateway error."


class GatewayUnavailable(GatewayError):
    """Transport or HTTP level failure talking to the gateway."""

    default_message = "Payment gateway is unreachable."


class GatewayRejected(GatewayError):
    """The gateway answered but refused the payment."""

    default_message = "Payment was rejected."


class ConfirmationTimeout(PurchaseError):
    default_message = (
        "We could not confirm your payment yet. If you completed the M-Pesa prompt, "
        "your account will be activated once the payment is confirmed."
    )


class PersistenceError(PurchaseError):
    default_message = "Could not save the purchase record."

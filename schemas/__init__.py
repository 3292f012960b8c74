from .payment_schema import PaymentCreate, PaymentRead, CheckoutSessionResponse, WebhookAck
from .ticket_schema import TicketCreate, TicketReason, TicketPaymentRequest, TicketRead

__all__ = [
    # Payment
    "PaymentCreate", "PaymentRead", "CheckoutSessionResponse", "WebhookAck",

    # Ticket
    "TicketCreate", "TicketReason", "TicketPaymentRequest", "TicketRead",
]

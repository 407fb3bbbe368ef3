"""Business handlers, one per consumer of subscription.created."""

from billing_pipeline.application.handlers.audit_log import AuditLogHandler
from billing_pipeline.application.handlers.base import Handler, HandlerContext
from billing_pipeline.application.handlers.generate_invoice import GenerateInvoiceHandler
from billing_pipeline.application.handlers.send_notification import (
    EmailMessage,
    EmailSender,
    SendNotificationHandler,
    render_confirmation,
)

__all__ = [
    "AuditLogHandler",
    "EmailMessage",
    "EmailSender",
    "GenerateInvoiceHandler",
    "Handler",
    "HandlerContext",
    "SendNotificationHandler",
    "render_confirmation",
]

"""send-notification: subscription confirmation email to the tenant contact."""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from billing_pipeline.application.exceptions import ConfigurationError
from billing_pipeline.application.handlers.base import HandlerContext
from billing_pipeline.domain.exceptions import DomainValidationError
from billing_pipeline.domain.models.event import SubscriptionCreatedEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    sender: str
    recipient: str
    subject: str
    text_body: str
    html_body: str


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


def render_confirmation(event: SubscriptionCreatedEvent, sender: str) -> EmailMessage:
    if not event.tenant_email:
        raise DomainValidationError("tenantEmail is required to send a confirmation")
    greeting = event.tenant_name or "there"
    amount = f"{event.currency.upper()} {event.amount}"
    next_billing = event.period_end.isoformat()
    text_body = "\n".join(
        [
            f"Hello {greeting},",
            "",
            f"Your {event.plan_id} subscription has been activated.",
            "",
            f"Plan: {event.plan_id}",
            f"Billing cycle: {event.billing_cycle.value}",
            f"Amount: {amount}",
            f"Next billing date: {next_billing}",
            f"Subscription ID: {event.subscription_id}",
            "",
            "You can view your invoices at any time through the billing dashboard.",
        ]
    )
    html_body = (
        "<h2>Subscription Confirmed</h2>"
        f"<p>Hello {greeting},</p>"
        f"<p>Your <strong>{event.plan_id}</strong> subscription has been activated.</p>"
        "<table>"
        f"<tr><td>Plan</td><td>{event.plan_id}</td></tr>"
        f"<tr><td>Billing cycle</td><td>{event.billing_cycle.value}</td></tr>"
        f"<tr><td>Amount</td><td>{amount}</td></tr>"
        f"<tr><td>Next billing date</td><td>{next_billing}</td></tr>"
        "</table>"
        f"<p>Subscription ID: {event.subscription_id}</p>"
    )
    return EmailMessage(
        sender=sender,
        recipient=event.tenant_email,
        subject=f"Subscription confirmed - {event.plan_id} plan",
        text_body=text_body,
        html_body=html_body,
    )


class SendNotificationHandler:
    """In prod the email goes to the injected sender; in dev and test it is only logged."""

    def __init__(
        self,
        environment: str = "dev",
        sender: Optional[EmailSender] = None,
        sender_email: str = "billing@example.com",
    ) -> None:
        if environment == "prod" and sender is None:
            raise ConfigurationError("An EmailSender is required in prod")
        self._environment = environment
        self._sender = sender
        self._sender_email = sender_email

    async def __call__(self, ctx: HandlerContext) -> None:
        message = render_confirmation(ctx.event, self._sender_email)
        if self._environment == "prod":
            await self._sender.send(message)
            logger.info("notification_sent", extra={"to": message.recipient, "subject": message.subject})
        else:
            logger.info(
                "notification_logged",
                extra={"to": message.recipient, "subject": message.subject, "text_body": message.text_body},
            )

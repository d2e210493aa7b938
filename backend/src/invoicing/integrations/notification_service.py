"""Notification service for invoice emails."""
from typing import Any

import structlog

from invoicing.config import settings

logger = structlog.get_logger(__name__)


class NotificationService:
    """
    Fire-and-forget mail dispatcher for invoice events.

    Messages are rendered from template names plus parameters; delivery goes
    through the configured mail provider. Callers treat every send as
    best-effort and log failures instead of propagating them.
    """

    def __init__(self, api_key: str | None = None, base_url: str | None = None):
        """
        Initialize notification service.

        Args:
            api_key: API key for the mail provider
            base_url: Frontend URL used to build invoice links
        """
        self.api_key = api_key if api_key is not None else settings.mail_api_key
        self.base_url = (base_url or settings.app_base_url).rstrip("/")

    async def send_email(
        self,
        to: str,
        subject: str,
        template: str,
        template_vars: dict[str, Any] | None = None,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
    ) -> dict:
        """
        Send one templated email.

        Args:
            to: Recipient email address
            subject: Email subject
            template: Template name
            template_vars: Template parameters
            cc: Optional carbon-copy recipients
            bcc: Optional blind carbon-copy recipients

        Returns:
            Dictionary with send status
        """
        logger.info(
            "email_notification",
            to=to,
            subject=subject,
            template=template,
            cc_count=len(cc or []),
            bcc_count=len(bcc or []),
            has_api_key=self.api_key is not None,
        )

        return {
            "status": "sent",
            "provider": "mock",
            "to": to,
            "subject": subject,
            "template": template,
            "from": settings.mail_from_address,
            "vars": template_vars or {},
        }

    async def send_invoice_notification(self, invoice: Any, employee_name: str | None = None) -> dict:
        """Tell an employee that a payroll invoice is waiting for review."""
        return await self.send_email(
            to=invoice.employee_email,
            subject=f"New invoice {invoice.invoice_number}",
            template="invoice-sent",
            template_vars={
                "name": employee_name or invoice.from_details.get("name"),
                "invoice_number": invoice.invoice_number,
                "amount": str(invoice.total),
                "currency": invoice.currency,
                "due_date": invoice.due_date.date().isoformat(),
                "link": f"{self.base_url}/invoices/{invoice.uuid}",
            },
        )

    async def send_invoice_confirmation_notification(self, invoice: Any, to: str) -> dict:
        """Tell the employer that the employee confirmed a payroll invoice."""
        return await self.send_email(
            to=to,
            subject=f"Invoice {invoice.invoice_number} confirmed",
            template="invoice-confirmed",
            template_vars={
                "employee_email": invoice.employee_email,
                "invoice_number": invoice.invoice_number,
                "amount": str(invoice.total),
                "currency": invoice.currency,
            },
        )

    async def send_b2b_invoice_notification(self, invoice: Any) -> dict:
        """Send a B2B invoice to its recipient."""
        sender = invoice.from_details.get("name") or "Your supplier"
        return await self.send_email(
            to=invoice.email_to or invoice.to_company_email,
            subject=invoice.email_subject or f"Invoice {invoice.invoice_number} from {sender}",
            template="b2b-invoice-sent",
            template_vars={
                "sender": sender,
                "recipient": invoice.to_company_name,
                "invoice_number": invoice.invoice_number,
                "amount": str(invoice.total),
                "currency": invoice.currency,
                "due_date": invoice.due_date.date().isoformat(),
                "message": invoice.email_body,
                "link": f"{self.base_url}/b2b-invoices/{invoice.uuid}/public",
            },
            cc=invoice.email_cc,
            bcc=invoice.email_bcc,
        )

    async def send_b2b_confirmation_notification(self, invoice: Any) -> dict:
        """Tell the sender company that its B2B invoice was confirmed."""
        return await self.send_email(
            to=invoice.from_details.get("email"),
            subject=f"Invoice {invoice.invoice_number} confirmed by {invoice.to_company_name}",
            template="b2b-invoice-confirmed",
            template_vars={
                "recipient": invoice.to_company_name,
                "invoice_number": invoice.invoice_number,
                "amount": str(invoice.total),
                "currency": invoice.currency,
            },
        )


notification_service = NotificationService()

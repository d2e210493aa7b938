"""Line-item and invoice total computation.

This is the only place invoice totals are derived. Every item mutation ends
with :meth:`InvoiceItemEngine.apply_totals` in the same transaction.

Per item::

    subtotal       = quantity * unit_price
    after_discount = subtotal - discount
    tax            = after_discount * tax_rate / 100
    total          = after_discount + tax

Per invoice::

    subtotal   = sum(item subtotal)
    net        = sum(item total) - invoice discount
    tax_amount = sum(item tax) + net * invoice tax_rate / 100
    total      = net + net * invoice tax_rate / 100

Each per-item value is rounded to cents (half-up) before summing so that the
invoice total always equals the sum of the displayed item totals.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

from invoicing.utils.money import ZERO, Numeric, quantize_money, to_decimal

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ItemAmounts:
    """Computed amounts for a single line item."""

    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    """Aggregate amounts written back onto an invoice."""

    subtotal: Decimal
    discount: Decimal
    tax_amount: Decimal
    total: Decimal


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


class InvoiceItemEngine:
    """Pure financial computation for invoice items."""

    @staticmethod
    def compute_item(
        quantity: Numeric | None,
        unit_price: Numeric | None,
        tax_rate: Numeric | None = None,
        discount: Numeric | None = None,
    ) -> ItemAmounts:
        """
        Compute the amounts of one line item.

        Args:
            quantity: Item quantity (defaults to 1 when None)
            unit_price: Price per unit
            tax_rate: Tax percentage applied after the discount
            discount: Absolute discount subtracted from the item subtotal

        Returns:
            ItemAmounts with every value rounded to 2 decimal places

        Raises:
            BadRequestError: If an input has more than 8 fractional digits
        """
        qty = to_decimal(quantity if quantity is not None else 1, "quantity")
        price = to_decimal(unit_price, "unit_price")
        rate = to_decimal(tax_rate, "tax_rate")
        item_discount = to_decimal(discount, "discount")

        subtotal = quantize_money(qty * price)
        after_discount = subtotal - quantize_money(item_discount)
        tax = quantize_money(after_discount * rate / HUNDRED)
        total = quantize_money(after_discount + tax)

        return ItemAmounts(
            subtotal=subtotal,
            discount=quantize_money(item_discount),
            tax=tax,
            total=total,
        )

    @classmethod
    def compute_totals(
        cls,
        items: Iterable[Any],
        invoice_tax_rate: Numeric | None = None,
        invoice_discount: Numeric | None = None,
    ) -> InvoiceTotals:
        """
        Aggregate item amounts into invoice totals.

        Items may be ORM objects or mappings exposing ``quantity``,
        ``unit_price``, ``tax_rate`` and ``discount``.

        Args:
            items: Line items of the invoice
            invoice_tax_rate: Invoice-level tax percentage applied to the net amount
            invoice_discount: Invoice-level absolute discount

        Returns:
            InvoiceTotals rounded to 2 decimal places
        """
        subtotal = ZERO
        item_tax = ZERO
        items_total = ZERO

        for item in items:
            amounts = cls.compute_item(
                _field(item, "quantity"),
                _field(item, "unit_price"),
                _field(item, "tax_rate"),
                _field(item, "discount"),
            )
            subtotal += amounts.subtotal
            item_tax += amounts.tax
            items_total += amounts.total

        discount = quantize_money(to_decimal(invoice_discount, "discount"))
        net = items_total - discount
        invoice_tax = quantize_money(net * to_decimal(invoice_tax_rate, "tax_rate") / HUNDRED)

        return InvoiceTotals(
            subtotal=quantize_money(subtotal),
            discount=discount,
            tax_amount=quantize_money(item_tax + invoice_tax),
            total=quantize_money(net + invoice_tax),
        )

    @classmethod
    def apply_totals(cls, invoice: Any) -> InvoiceTotals:
        """
        Recompute every item total and the invoice aggregates in place.

        Args:
            invoice: Invoice ORM object with loaded ``items``

        Returns:
            The totals written onto the invoice
        """
        for item in invoice.items:
            item.total = cls.compute_item(item.quantity, item.unit_price, item.tax_rate, item.discount).total

        totals = cls.compute_totals(invoice.items, invoice.tax_rate, invoice.discount)
        invoice.subtotal = totals.subtotal
        invoice.tax_amount = totals.tax_amount
        invoice.total = totals.total
        return totals

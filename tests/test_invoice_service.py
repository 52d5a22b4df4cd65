from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from support import DatabaseTestCase, principal_for

from supplyhub.errors import InvalidTransition, NotFound, ValidationError
from supplyhub.models import InvoiceStatus, OrderStatus, UserRole
from supplyhub.services.invoice_service import (
    VALID_INVOICE_TRANSITIONS,
    check_transition,
    create_invoice,
    initial_status_for,
    list_invoices,
    update_invoice,
)


class TransitionTableTests(unittest.TestCase):
    def test_terminal_statuses_have_no_edges(self) -> None:
        for status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            with self.assertRaises(InvalidTransition) as ctx:
                check_transition(status, InvoiceStatus.PENDING)
            self.assertEqual(ctx.exception.message, f'Cannot transition from {status.value}')

    def test_disallowed_edges_name_both_ends(self) -> None:
        with self.assertRaises(InvalidTransition) as ctx:
            check_transition(InvoiceStatus.PENDING, 'DISPUTED')
        self.assertEqual(ctx.exception.message, 'Invalid transition from PENDING to DISPUTED')

        with self.assertRaises(InvalidTransition) as ctx:
            check_transition(InvoiceStatus.OVERDUE, 'REFUNDED')
        self.assertEqual(ctx.exception.message, 'Invalid transition from OVERDUE to REFUNDED')

    def test_every_listed_edge_is_accepted(self) -> None:
        for source, targets in VALID_INVOICE_TRANSITIONS.items():
            for target in targets:
                self.assertEqual(check_transition(source, target.value), target)

    def test_initial_status_depends_on_due_date(self) -> None:
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        self.assertEqual(initial_status_for(now + timedelta(days=1), now=now), InvoiceStatus.PENDING)
        self.assertEqual(initial_status_for(now - timedelta(days=1), now=now), InvoiceStatus.OVERDUE)
        self.assertEqual(initial_status_for(now, now=now), InvoiceStatus.OVERDUE)


class UpdateInvoiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.restaurant = self.make_restaurant()
        self.supplier = self.make_supplier()
        self.owner = principal_for(self.make_user(UserRole.OWNER, restaurant=self.restaurant))
        self.rep = principal_for(self.make_user(UserRole.STAFF, supplier=self.supplier))
        self.invoice = self.make_invoice(self.restaurant, self.supplier, subtotal='100.00', tax='8.25')

    def update(self, principal=None, **changes):
        return update_invoice(self.db, principal or self.owner, invoice_id=self.invoice.id, **changes)

    def test_partial_payment_equal_to_total_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.update(status='PARTIALLY_PAID', paid_amount=108.25)

        self.assertEqual(ctx.exception.message, 'PARTIALLY_PAID requires paidAmount < total')
        self.assertEqual(self.invoice.status, InvoiceStatus.PENDING)

    def test_partial_payment_needs_positive_amount(self) -> None:
        for amount in (None, 0, -5):
            with self.assertRaises(ValidationError) as ctx:
                self.update(status='PARTIALLY_PAID', paid_amount=amount)
            self.assertEqual(ctx.exception.message, 'PARTIALLY_PAID requires paidAmount > 0')

    def test_partial_then_full_payment(self) -> None:
        self.update(status='PARTIALLY_PAID', paid_amount='50.00', payment_method='CHECK', payment_reference='#1001')

        self.assertEqual(self.invoice.status, InvoiceStatus.PARTIALLY_PAID)
        self.assertEqual(self.invoice.paid_amount, Decimal('50.00'))
        self.assertEqual(self.invoice.payment_method, 'CHECK')
        self.assertIsNone(self.invoice.paid_at)

        self.update(self.rep, status='PAID')

        self.assertEqual(self.invoice.status, InvoiceStatus.PAID)
        self.assertEqual(self.invoice.paid_amount, Decimal('108.25'))
        self.assertIsNotNone(self.invoice.paid_at)

        with self.assertRaises(InvalidTransition) as ctx:
            self.update(status='CANCELLED')
        self.assertEqual(ctx.exception.message, 'Cannot transition from PAID')

    def test_paid_keeps_provided_amount(self) -> None:
        self.update(status='PAID', paid_amount='100.00', payment_method='ACH')

        self.assertEqual(self.invoice.paid_amount, Decimal('100.00'))
        self.assertEqual(self.invoice.payment_method, 'ACH')

    def test_paid_refuses_zero_or_negative_amount(self) -> None:
        for amount in (0, '-20.00'):
            with self.assertRaises(ValidationError) as ctx:
                self.update(status='PAID', paid_amount=amount)
            self.assertEqual(ctx.exception.message, 'PAID requires paidAmount > 0 when given')

        self.assertEqual(self.invoice.status, InvoiceStatus.PENDING)
        self.assertIsNone(self.invoice.paid_amount)

    def test_notes_and_due_date_change_without_status(self) -> None:
        due = datetime(2026, 12, 31, tzinfo=timezone.utc)

        self.update(notes='Call before paying', due_date=due)

        self.assertEqual(self.invoice.status, InvoiceStatus.PENDING)
        self.assertEqual(self.invoice.notes, 'Call before paying')
        self.assertEqual(self.invoice.due_date, due)

    def test_invoices_outside_scope_are_not_found(self) -> None:
        other = self.make_restaurant('Elsewhere')
        outsider = principal_for(self.make_user(UserRole.OWNER, restaurant=other))

        with self.assertRaises(NotFound) as ctx:
            self.update(outsider, status='PAID')

        self.assertEqual(ctx.exception.message, 'Invoice not found')


class CreateInvoiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.restaurant = self.make_restaurant()
        self.supplier = self.make_supplier()
        self.staff_user = self.make_user(UserRole.STAFF, restaurant=self.restaurant)
        self.owner = principal_for(self.make_user(UserRole.OWNER, restaurant=self.restaurant))
        self.rep = principal_for(self.make_user(UserRole.STAFF, supplier=self.supplier))

    def test_future_due_date_is_pending_and_auto_numbered(self) -> None:
        invoice = create_invoice(
            self.db,
            self.owner,
            supplier_id=self.supplier.id,
            subtotal='200.00',
            tax='16.50',
            due_date=datetime.now(tz=timezone.utc) + timedelta(days=14),
        )

        self.assertEqual(invoice.status, InvoiceStatus.PENDING)
        self.assertEqual(invoice.total, Decimal('216.50'))
        self.assertTrue(invoice.invoice_number.endswith('-00001'))

    def test_past_due_date_starts_overdue(self) -> None:
        invoice = create_invoice(
            self.db,
            self.owner,
            supplier_id=self.supplier.id,
            subtotal='20.00',
            invoice_number='SUP-778',
            due_date=datetime.now(tz=timezone.utc) - timedelta(days=1),
        )

        self.assertEqual(invoice.status, InvoiceStatus.OVERDUE)
        self.assertEqual(invoice.invoice_number, 'SUP-778')

    def test_order_can_only_be_invoiced_once(self) -> None:
        order = self.make_order(self.restaurant, self.supplier, self.staff_user, status=OrderStatus.CONFIRMED)
        due = datetime.now(tz=timezone.utc) + timedelta(days=30)

        invoice = create_invoice(self.db, self.rep, order_id=order.id, subtotal='100.00', due_date=due)
        self.assertEqual(invoice.restaurant_id, self.restaurant.id)
        self.assertEqual(invoice.supplier_id, self.supplier.id)

        with self.assertRaises(ValidationError) as ctx:
            create_invoice(self.db, self.owner, supplier_id=self.supplier.id, order_id=order.id, subtotal='1', due_date=due)
        self.assertEqual(ctx.exception.message, 'Order already has an invoice')

    def test_listing_summarizes_balances(self) -> None:
        self.make_invoice(self.restaurant, self.supplier, subtotal='100.00', tax='0.00')
        self.make_invoice(self.restaurant, self.supplier, subtotal='50.00', tax='0.00', status=InvoiceStatus.OVERDUE)
        self.make_invoice(self.restaurant, self.supplier, subtotal='25.00', tax='0.00', status=InvoiceStatus.PAID)

        invoices, summary = list_invoices(self.db, self.owner)
        overdue, _ = list_invoices(self.db, self.owner, status=InvoiceStatus.OVERDUE)

        self.assertEqual(len(invoices), 3)
        self.assertEqual(len(overdue), 1)
        self.assertEqual(summary.total_pending, Decimal('150.00'))
        self.assertEqual(summary.total_paid, Decimal('25.00'))
        self.assertEqual(summary.overdue_count, 1)


if __name__ == '__main__':
    unittest.main()

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select

from support import DatabaseTestCase

from supplyhub.errors import InvalidState
from supplyhub.models import Invoice, InvoiceStatus, Notification, NotificationType, OrderStatus, UserRole
from supplyhub.services.invoice_generator_service import (
    expected_invoice_total,
    format_invoice_number,
    generate_invoice_for_order,
    next_invoice_number,
)


class InvoiceNumberTests(unittest.TestCase):
    def test_uses_last_four_characters_of_supplier_id(self) -> None:
        self.assertEqual(format_invoice_number('c1a2b3d4e5f6', 7), 'INV-E5F6-00007')
        self.assertEqual(format_invoice_number(42, 1), 'INV-42-00001')
        self.assertEqual(format_invoice_number(123456, 12345), 'INV-3456-12345')


class GenerateInvoiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.restaurant = self.make_restaurant()
        self.supplier = self.make_supplier()
        self.staff = self.make_user(UserRole.STAFF, restaurant=self.restaurant)
        self.owner = self.make_user(UserRole.OWNER, restaurant=self.restaurant)
        self.now = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)

    def delivered_order(self, **amounts):
        return self.make_order(self.restaurant, self.supplier, self.staff, status=OrderStatus.DELIVERED, **amounts)

    def test_invoice_mirrors_order_totals(self) -> None:
        order = self.delivered_order(subtotal='100.00', tax='8.25', delivery_fee='12.50', discount='2.50')

        result = generate_invoice_for_order(self.db, order=order, now=self.now)

        invoice = result.invoice
        self.assertTrue(result.created)
        self.assertEqual(invoice.status, InvoiceStatus.PENDING)
        self.assertEqual(invoice.subtotal, Decimal('110.00'))
        self.assertEqual(invoice.tax, Decimal('8.25'))
        self.assertEqual(invoice.total, invoice.subtotal + invoice.tax)
        self.assertEqual(invoice.total, order.total)
        self.assertEqual(invoice.due_date, self.now + timedelta(days=30))
        self.assertEqual(invoice.notes, f'Auto-generated from delivered order {order.order_number}')
        self.assertEqual(invoice.invoice_number, format_invoice_number(self.supplier.id, 1))

    def test_second_call_returns_existing_invoice(self) -> None:
        order = self.delivered_order()

        first = generate_invoice_for_order(self.db, order=order, now=self.now)
        second = generate_invoice_for_order(self.db, order=order, now=self.now)

        self.assertFalse(second.created)
        self.assertEqual(first.invoice.id, second.invoice.id)
        count = self.db.execute(select(func.count(Invoice.id)).where(Invoice.order_id == order.id)).scalar_one()
        self.assertEqual(count, 1)

    def test_numbers_count_up_per_supplier(self) -> None:
        first = generate_invoice_for_order(self.db, order=self.delivered_order(), now=self.now).invoice
        second = generate_invoice_for_order(self.db, order=self.delivered_order(), now=self.now).invoice

        self.assertTrue(first.invoice_number.endswith('-00001'))
        self.assertTrue(second.invoice_number.endswith('-00002'))
        self.assertEqual(next_invoice_number(self.db, supplier_id=self.supplier.id)[-5:], '00003')

    def test_numbers_held_by_manual_invoices_are_skipped(self) -> None:
        self.make_invoice(self.restaurant, self.supplier, number=format_invoice_number(self.supplier.id, 2))

        first = generate_invoice_for_order(self.db, order=self.delivered_order(), now=self.now)
        second = generate_invoice_for_order(self.db, order=self.delivered_order(), now=self.now)

        self.assertTrue(first.created)
        self.assertEqual(first.invoice.invoice_number, format_invoice_number(self.supplier.id, 3))
        self.assertEqual(second.invoice.invoice_number, format_invoice_number(self.supplier.id, 4))

    def test_total_well_above_catalog_prices_is_disputed(self) -> None:
        order = self.delivered_order(subtotal='100.00', tax='8.25')
        self.add_line(order, self.make_product(self.supplier, price='20.00'), quantity='4', unit_price='25.00')

        result = generate_invoice_for_order(self.db, order=order, now=self.now)

        self.assertTrue(result.disputed)
        self.assertEqual(result.invoice.status, InvoiceStatus.DISPUTED)
        alert = self.db.execute(select(Notification).where(Notification.type == NotificationType.SYSTEM)).scalar_one()
        self.assertEqual(alert.user_id, self.owner.id)
        self.assertEqual(alert.title, 'Invoice Auto-Disputed')
        self.assertIn('25.00% higher than the expected total ($86.60)', alert.message)
        self.assertEqual(alert.meta['expectedTotal'], 86.6)

    def test_total_within_tolerance_stays_pending(self) -> None:
        order = self.delivered_order(subtotal='100.00', tax='8.25')
        self.add_line(order, self.make_product(self.supplier, price='24.00'), quantity='4', unit_price='25.00')

        result = generate_invoice_for_order(self.db, order=order, now=self.now)

        self.assertFalse(result.disputed)
        self.assertEqual(result.invoice.status, InvoiceStatus.PENDING)
        self.assertEqual(expected_invoice_total(self.db, order_id=order.id), Decimal('103.92'))

    def test_restaurant_owner_is_notified(self) -> None:
        order = self.delivered_order()

        invoice = generate_invoice_for_order(self.db, order=order, now=self.now).invoice

        notification = self.db.execute(select(Notification)).scalar_one()
        self.assertEqual(notification.user_id, self.owner.id)
        self.assertEqual(notification.type, NotificationType.INVOICE)
        self.assertEqual(notification.title, 'Invoice Generated')
        self.assertIn(invoice.invoice_number, notification.message)
        self.assertIn('2026-04-01', notification.message)

    def test_undelivered_orders_are_refused(self) -> None:
        order = self.make_order(self.restaurant, self.supplier, self.staff, status=OrderStatus.SHIPPED)

        with self.assertRaises(InvalidState):
            generate_invoice_for_order(self.db, order=order, now=self.now)


if __name__ == '__main__':
    unittest.main()

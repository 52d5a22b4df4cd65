from __future__ import annotations

import unittest
from decimal import Decimal

from supplyhub.errors import ValidationError
from supplyhub.services.money import format_currency, invoice_total, money_to_float, order_total, to_money


class MoneyTests(unittest.TestCase):
    def test_floats_round_half_up_to_cents(self) -> None:
        self.assertEqual(to_money(108.25), Decimal('108.25'))
        self.assertEqual(to_money('2.675'), Decimal('2.68'))
        self.assertEqual(to_money(Decimal('0.005')), Decimal('0.01'))

    def test_totals(self) -> None:
        self.assertEqual(order_total(subtotal='100', tax='8.25', delivery_fee='5', discount='3.25'), Decimal('110.00'))
        self.assertEqual(invoice_total(subtotal='0.10', tax='0.20'), Decimal('0.30'))

    def test_invalid_amounts(self) -> None:
        for raw in ('abc', 'NaN', 'Infinity', None):
            with self.assertRaises(ValidationError):
                to_money(raw, field='paidAmount')

    def test_boundary_formatting(self) -> None:
        self.assertEqual(format_currency(Decimal('1234.5')), '$1,234.50')
        self.assertEqual(money_to_float(Decimal('19.999')), 20.0)
        self.assertIsNone(money_to_float(None))


if __name__ == '__main__':
    unittest.main()

from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from support import DatabaseTestCase

from supplyhub.db import get_db
from supplyhub.dependencies import get_outbox
from supplyhub.main import app
from supplyhub.models import OrderStatus, UserRole
from supplyhub.security.sessions import create_web_session
from supplyhub.services.outbox import Outbox


class ApiTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.restaurant = self.make_restaurant()
        self.supplier = self.make_supplier()
        self.staff_user = self.make_user(UserRole.STAFF, restaurant=self.restaurant, first_name='Sam')
        self.manager_user = self.make_user(UserRole.MANAGER, restaurant=self.restaurant)
        self.staff_token = create_web_session(self.db, self.staff_user.id)
        self.manager_token = create_web_session(self.db, self.manager_user.id)
        self.db.commit()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        def override_get_outbox():
            yield Outbox(self.publisher, self.email_sender)

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_outbox] = override_get_outbox
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        super().tearDown()

    @staticmethod
    def auth(token: str) -> dict:
        return {'Authorization': f'Bearer {token}'}


class OrderApiTests(ApiTestCase):
    def test_missing_token_is_unauthorized(self) -> None:
        response = self.client.patch('/orders/1', json={'action': 'submit'})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {'error': 'Unauthorized'})
        self.assertEqual(response.headers['cache-control'], 'no-store')

    def test_logout_revokes_token(self) -> None:
        me = self.client.get('/auth/me', headers=self.auth(self.staff_token))
        self.assertEqual(me.json()['role'], 'STAFF')
        self.assertFalse(me.json()['isSupplier'])

        self.client.post('/auth/logout', headers=self.auth(self.staff_token))

        after = self.client.get('/auth/me', headers=self.auth(self.staff_token))
        self.assertEqual(after.status_code, 401)

    def test_invalid_action_is_bad_request(self) -> None:
        order = self.make_order(self.restaurant, self.supplier, self.staff_user)
        self.db.commit()

        response = self.client.patch(f'/orders/{order.id}', json={'action': 'teleport'}, headers=self.auth(self.staff_token))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Invalid action'})

    def test_missing_body_field_fails_validation(self) -> None:
        response = self.client.patch('/orders/1', json={}, headers=self.auth(self.staff_token))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Validation failed')

    def test_submit_commits_then_dispatches(self) -> None:
        order = self.make_order(self.restaurant, self.supplier, self.staff_user, subtotal='120.50', tax='9.64')
        self.db.commit()

        response = self.client.patch(f'/orders/{order.id}', json={'action': 'submit'}, headers=self.auth(self.staff_token))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['status'], OrderStatus.PENDING.value)
        self.assertEqual(body['total'], 130.14)
        self.assertFalse(body['requiresApproval'])
        self.assertEqual([event.name for event in self.publisher.events], ['order/status.changed'])
        self.assertEqual(len(self.email_sender.emails), 1)

    def test_guard_failure_dispatches_nothing(self) -> None:
        order = self.make_order(self.restaurant, self.supplier, self.staff_user, status=OrderStatus.PENDING)
        self.db.commit()

        response = self.client.patch(f'/orders/{order.id}', json={'action': 'ship'}, headers=self.auth(self.staff_token))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Can only ship confirmed orders'})
        self.assertEqual(self.publisher.events, [])

    def test_unknown_order_is_not_found(self) -> None:
        response = self.client.get('/orders/9999', headers=self.auth(self.staff_token))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {'error': 'Order not found'})


class ApprovalApiTests(ApiTestCase):
    def test_staff_review_is_forbidden(self) -> None:
        self.make_rule(self.restaurant)
        order = self.make_order(self.restaurant, self.supplier, self.staff_user, subtotal='750.00')
        self.db.commit()
        self.client.patch(f'/orders/{order.id}', json={'action': 'submit'}, headers=self.auth(self.staff_token))

        response = self.client.post(
            f'/orders/{order.id}/approval', json={'status': 'APPROVED'}, headers=self.auth(self.staff_token)
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {'error': 'Insufficient permissions'})

        approved = self.client.post(
            f'/orders/{order.id}/approval', json={'status': 'APPROVED'}, headers=self.auth(self.manager_token)
        )
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.json()['order']['status'], 'PENDING')
        self.assertEqual(approved.json()['approval']['status'], 'APPROVED')

    def test_manager_cannot_delete_rule(self) -> None:
        created = self.client.post(
            '/approval-rules',
            json={'minAmount': 500, 'requiredRole': 'MANAGER'},
            headers=self.auth(self.manager_token),
        )
        self.assertEqual(created.status_code, 201)

        response = self.client.delete(f"/approval-rules/{created.json()['id']}", headers=self.auth(self.manager_token))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {'error': 'Only owners can delete approval rules'})

    def test_null_required_role_is_bad_request(self) -> None:
        created = self.client.post(
            '/approval-rules',
            json={'minAmount': 500, 'requiredRole': 'MANAGER'},
            headers=self.auth(self.manager_token),
        )

        response = self.client.patch(
            f"/approval-rules/{created.json()['id']}",
            json={'requiredRole': None},
            headers=self.auth(self.manager_token),
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'requiredRole must be one of STAFF, MANAGER, OWNER'})


class InvoiceAndInventoryApiTests(ApiTestCase):
    def test_partial_payment_equal_to_total(self) -> None:
        invoice = self.make_invoice(self.restaurant, self.supplier, subtotal='100.00', tax='8.25')
        self.db.commit()

        response = self.client.patch(
            f'/invoices/{invoice.id}',
            json={'status': 'PARTIALLY_PAID', 'paidAmount': 108.25},
            headers=self.auth(self.manager_token),
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'PARTIALLY_PAID requires paidAmount < total'})

    def test_usage_adjustment_response(self) -> None:
        created = self.client.post(
            '/inventory',
            json={'name': 'Shallots', 'unit': 'kg', 'currentQuantity': 5},
            headers=self.auth(self.staff_token),
        )
        item_id = created.json()['id']

        response = self.client.patch(
            f'/inventory/{item_id}',
            json={'adjustQuantity': 20, 'changeType': 'USED'},
            headers=self.auth(self.staff_token),
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'previousQuantity': 5.0, 'newQuantity': 0.0, 'changeType': 'USED'})

        detail = self.client.get(f'/inventory/{item_id}', headers=self.auth(self.staff_token)).json()
        self.assertEqual(detail['currentQuantity'], 0.0)
        self.assertEqual(len(detail['logs']), 2)


if __name__ == '__main__':
    unittest.main()

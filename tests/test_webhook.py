import pytest
import stripe

from academy.models.enrollment import CourseEnrollment
from academy.models.payment import Payment
from academy.models.subscription import Subscription
from academy.services.entitlements import has_active_subscription

from .factories import count, make_course, make_payment, make_subscription, sign, signed_event

ALICE = 'alice@example.com'
WEBHOOK_URL = '/payment/webhook'


def post_event(client, payload, header):
    return client.post(WEBHOOK_URL, data=payload, content_type='application/json',
                       headers={'Stripe-Signature': header})


@pytest.fixture
def course_id(app):
    with app.app_context():
        return make_course().id


@pytest.fixture
def paid_checkout(app, gateway, course_id):
    """A completed one-time checkout with its pending payment row"""
    with app.app_context():
        make_payment(ALICE, course_id, 'cs_hook')
    return gateway.add_session('cs_hook', mode='payment', payment_status='paid', status='complete',
                               payment_intent='pi_hook', client_reference_id=str(course_id),
                               metadata={'user_id': ALICE})


def test_missing_signature_is_rejected(client):
    payload, _ = signed_event('checkout.session.completed', {'id': 'cs_1'})
    response = client.post(WEBHOOK_URL, data=payload, content_type='application/json')
    assert response.status_code == 400


def test_wrong_signature_is_rejected(client):
    payload, header = signed_event('checkout.session.completed', {'id': 'cs_1'}, secret='whsec_other')
    response = post_event(client, payload, header)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid signature'


def test_unparseable_body_is_rejected(client):
    payload = '{not json'
    response = post_event(client, payload, sign(payload))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid payload'


def test_completed_checkout_enrolls(app, client, paid_checkout, course_id):
    payload, header = signed_event('checkout.session.completed', paid_checkout)
    response = post_event(client, payload, header)

    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'success'
    assert body['result']['paid'] is True
    with app.app_context():
        payment = Payment.query.filter_by(user_id=ALICE).one()
        assert payment.status == Payment.STATUS_SUCCEEDED
        assert payment.stripe_payment_intent_id == 'pi_hook'
        assert count(CourseEnrollment, CourseEnrollment.course_id == course_id) == 1


def test_redelivered_event_is_acknowledged_without_duplicates(app, client, paid_checkout):
    payload, header = signed_event('checkout.session.completed', paid_checkout)

    first = post_event(client, payload, header)
    second = post_event(client, payload, header)

    assert first.status_code == second.status_code == 200
    assert second.get_json()['result']['already_enrolled'] is True
    with app.app_context():
        assert count(CourseEnrollment) == 1


def test_event_data_is_not_trusted_over_the_gateway(app, client, gateway, course_id):
    # The event claims paid; Stripe's copy of the session says otherwise
    gateway.add_session('cs_async', payment_status='unpaid', status='complete',
                        client_reference_id=str(course_id), metadata={'user_id': ALICE})
    payload, header = signed_event('checkout.session.completed', {
        'id': 'cs_async', 'object': 'checkout.session', 'mode': 'payment',
        'payment_status': 'paid', 'metadata': {'user_id': ALICE},
    })

    response = post_event(client, payload, header)

    assert response.status_code == 200
    assert response.get_json()['result']['paid'] is False
    with app.app_context():
        assert count(CourseEnrollment) == 0


def test_completed_subscription_checkout_activates(app, client, gateway):
    session = gateway.add_session('cs_sub', mode='subscription', payment_status='paid', status='complete',
                                  subscription='sub_hook', customer='cus_hook', metadata={'user_id': ALICE})
    payload, header = signed_event('checkout.session.completed', session)

    response = post_event(client, payload, header)

    assert response.status_code == 200
    with app.app_context():
        assert has_active_subscription(ALICE) is True
        assert Subscription.query.filter_by(user_id=ALICE).one().stripe_subscription_id == 'sub_hook'


def test_unknown_session_is_ignored(client):
    payload, header = signed_event('checkout.session.completed', {
        'id': 'cs_unknown', 'object': 'checkout.session', 'mode': 'payment',
    })
    response = post_event(client, payload, header)

    assert response.status_code == 200
    assert response.get_json()['status'] == 'ignored'


def test_session_for_missing_course_is_ignored(app, client, gateway):
    session = gateway.add_session('cs_gone', payment_status='paid', status='complete',
                                  client_reference_id='9999', metadata={'user_id': ALICE})
    payload, header = signed_event('checkout.session.completed', session)

    response = post_event(client, payload, header)

    assert response.status_code == 200
    assert response.get_json()['status'] == 'ignored'
    with app.app_context():
        assert count(CourseEnrollment) == 0


def test_gateway_outage_asks_for_redelivery(client, gateway, paid_checkout):
    gateway.error = stripe.APIConnectionError('connection reset')
    payload, header = signed_event('checkout.session.completed', paid_checkout)

    response = post_event(client, payload, header)
    assert response.status_code == 502


def test_expired_checkout_fails_payment(app, client, course_id):
    with app.app_context():
        make_payment(ALICE, course_id, 'cs_expired')
    payload, header = signed_event('checkout.session.expired', {'id': 'cs_expired', 'object': 'checkout.session'})

    response = post_event(client, payload, header)

    assert response.status_code == 200
    assert response.get_json()['payment']['status'] == Payment.STATUS_FAILED


def test_deleted_subscription_is_canceled(app, client):
    with app.app_context():
        make_subscription(ALICE, stripe_subscription_id='sub_gone')
    payload, header = signed_event('customer.subscription.deleted', {'id': 'sub_gone', 'object': 'subscription'})

    response = post_event(client, payload, header)

    assert response.status_code == 200
    assert len(response.get_json()['canceled']) == 1
    with app.app_context():
        assert has_active_subscription(ALICE) is False


def test_unhandled_event_type_is_acknowledged(client):
    payload, header = signed_event('invoice.paid', {'id': 'in_1', 'object': 'invoice'})
    response = post_event(client, payload, header)

    assert response.status_code == 200
    assert response.get_json() == {'status': 'ignored', 'type': 'invoice.paid'}


def test_redelivered_subscription_checkout_after_cancellation_stays_canceled(app, client, gateway):
    session = gateway.add_session('cs_sub', mode='subscription', payment_status='paid', status='complete',
                                  subscription='sub_hook', customer='cus_hook', metadata={'user_id': ALICE})
    completed = signed_event('checkout.session.completed', session)
    deleted = signed_event('customer.subscription.deleted', {'id': 'sub_hook', 'object': 'subscription'})

    post_event(client, *completed)
    post_event(client, *deleted)
    response = post_event(client, *completed)

    assert response.status_code == 200
    assert response.get_json()['result']['already_subscribed'] is True
    with app.app_context():
        assert has_active_subscription(ALICE) is False
        assert Subscription.query.filter_by(user_id=ALICE).one().status == Subscription.STATUS_CANCELED


def test_event_naming_another_buyer_credits_the_session_owner(app, client, gateway, course_id):
    gateway.add_session('cs_owner', payment_status='paid', status='complete', payment_intent='pi_owner',
                        client_reference_id=str(course_id), metadata={'user_id': ALICE})
    payload, header = signed_event('checkout.session.completed', {
        'id': 'cs_owner', 'object': 'checkout.session', 'mode': 'payment',
        'metadata': {'user_id': 'mallory@example.com'},
    })

    response = post_event(client, payload, header)

    assert response.status_code == 200
    with app.app_context():
        assert CourseEnrollment.query.one().user_id == ALICE

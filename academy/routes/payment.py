from flask import Blueprint, request, jsonify, current_app, redirect, url_for, flash, abort
from flask_login import login_required
import stripe

from .. import db
from ..errors import AlreadyEnrolled, GatewayUnavailable, MalformedSession, NotFound, SessionOwnerMismatch
from ..identity import current_identity
from ..models.course import Course
from ..models.payment import Payment
from ..services.entitlements import has_active_enrollment, has_active_subscription
from ..services.reconciler import PaymentReconciler
from ..utils.stripe_gateway import CheckoutSession
import logging

logger = logging.getLogger(__name__)

payment_bp = Blueprint('payment', __name__)

SESSION_ID_PLACEHOLDER = '?session_id={CHECKOUT_SESSION_ID}'

def get_reconciler():
    return PaymentReconciler(current_app.extensions['payment_gateway'])

# ---------------------------
# subscription
# ---------------------------

@payment_bp.route('/subscription-checkout')
@login_required
def subscription_checkout():
    """Subscription offer shown to users without access"""
    identity = current_identity()
    return jsonify({
        'name': current_app.config['SUBSCRIPTION_NAME'],
        'description': current_app.config['SUBSCRIPTION_DESCRIPTION'],
        'price_cents': current_app.config['SUBSCRIPTION_PRICE_CENTS'],
        'currency': current_app.config['STRIPE_CURRENCY'],
        'interval': current_app.config['SUBSCRIPTION_INTERVAL'],
        'stripe_public_key': current_app.config['STRIPE_PUBLIC_KEY'],
        'has_active_subscription': has_active_subscription(identity.user_id)
    })

@payment_bp.route('/subscription-session', methods=['POST'])
@login_required
def create_subscription_session():
    """Send the user to Stripe's hosted subscription checkout"""
    try:
        session = get_reconciler().create_subscription_session(
            current_identity(),
            success_url=url_for('payment.subscription_success', _external=True) + SESSION_ID_PLACEHOLDER,
            cancel_url=url_for('payment.subscription_cancel', _external=True)
        )
    except GatewayUnavailable as e:
        logger.error(f"Error creating subscription session: {str(e)}")
        flash('The payment service is unavailable, please try again later.', 'error')
        return redirect(url_for('payment.subscription_cancel'))

    return redirect(session.url, code=303)

@payment_bp.route('/subscription-success')
@login_required
def subscription_success():
    identity = current_identity()
    try:
        outcome = get_reconciler().handle_subscription_success(request.args.get('session_id'), identity.user_id)
    except (GatewayUnavailable, SessionOwnerMismatch) as e:
        logger.error(f"Error confirming subscription: {str(e)}")
        flash('We could not confirm your subscription.', 'error')
        return redirect(url_for('payment.subscription_cancel'))

    if not outcome.paid:
        flash('Your subscription payment was not completed.', 'warning')
        return redirect(url_for('payment.subscription_cancel'))

    flash('Your subscription is active! Welcome to the platform.', 'success')
    return jsonify(outcome.to_dict())

@payment_bp.route('/subscription-cancel')
@login_required
def subscription_cancel():
    return jsonify({'status': 'canceled'})

# ---------------------------
# one-time course purchase
# ---------------------------

@payment_bp.route('/checkout/<int:course_id>')
@login_required
def checkout(course_id):
    """Checkout page for one course"""
    course = db.session.get(Course, course_id)
    if course is None:
        abort(404)

    identity = current_identity()
    if has_active_enrollment(identity.user_id, course.id):
        flash('You are already enrolled in this course.', 'info')
        return redirect(url_for('courses.detail', course_id=course.id))

    return jsonify({
        'course': course.to_dict(),
        'currency': current_app.config['STRIPE_CURRENCY'],
        'stripe_public_key': current_app.config['STRIPE_PUBLIC_KEY']
    })

@payment_bp.route('/checkout-session/<int:course_id>', methods=['POST'])
@login_required
def create_checkout_session(course_id):
    """Record a pending payment and send the user to Stripe"""
    try:
        session = get_reconciler().create_checkout_session(
            course_id,
            current_identity(),
            success_url=url_for('payment.success', _external=True) + SESSION_ID_PLACEHOLDER,
            cancel_url=url_for('payment.cancel', course_id=course_id, _external=True)
        )
    except AlreadyEnrolled:
        flash('You are already enrolled in this course.', 'info')
        return redirect(url_for('courses.detail', course_id=course_id))
    except GatewayUnavailable as e:
        logger.error(f"Error creating checkout session: {str(e)}")
        flash('The payment service is unavailable, please try again later.', 'error')
        return redirect(url_for('payment.cancel', course_id=course_id))

    return redirect(session.url, code=303)

@payment_bp.route('/success')
@login_required
def success():
    """Stripe redirects here once the checkout is done"""
    identity = current_identity()
    try:
        outcome = get_reconciler().handle_payment_success(request.args.get('session_id'), identity.user_id)
    except (GatewayUnavailable, NotFound, SessionOwnerMismatch) as e:
        logger.error(f"Error confirming payment: {str(e)}")
        flash('We could not confirm your payment.', 'error')
        return redirect(url_for('payment.cancel'))

    if not outcome.paid:
        return redirect(url_for('payment.cancel'))

    if outcome.enrollment is None:
        flash('Your payment needs a manual check before you are enrolled.', 'warning')
        return redirect(url_for('payment.cancel', course_id=outcome.course.id))

    flash('Payment received, you are enrolled.', 'success')
    return jsonify(outcome.to_dict())

@payment_bp.route('/cancel')
@login_required
def cancel():
    course_id = request.args.get('course_id', type=int)
    course = db.session.get(Course, course_id) if course_id is not None else None
    return jsonify({
        'status': 'canceled',
        'course': course.to_dict() if course else None
    })

@payment_bp.route('/history')
@login_required
def history():
    """The current user's payments, newest first"""
    identity = current_identity()
    payments = db.session.execute(
        db.select(Payment)
        .where(Payment.user_id == identity.user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    ).scalars().all()
    return jsonify({'payments': [payment.to_dict() for payment in payments]})

# ---------------------------
# webhook
# ---------------------------

@payment_bp.route('/webhook', methods=['POST'])
def webhook():
    """Handle Stripe webhooks.

    Repeated deliveries are acknowledged with 2xx like first ones; only a
    failure to reach Stripe answers 502 so the event is retried.
    """
    gateway = current_app.extensions['payment_gateway']
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')

    try:
        # Verify webhook signature
        event = gateway.construct_event(payload, sig_header)
    except ValueError as e:
        logger.error(f"Invalid payload: {str(e)}")
        return jsonify({'error': 'Invalid payload'}), 400
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid signature: {str(e)}")
        return jsonify({'error': 'Invalid signature'}), 400

    event_type = event.type
    logger.info(f"Stripe event {event.id}: {event_type}")
    reconciler = PaymentReconciler(gateway)

    try:
        if event_type == 'checkout.session.completed':
            # The buyer is read from Stripe's copy of the session, not the event body
            session = CheckoutSession.from_stripe(event.data.object)
            if session.mode == 'subscription':
                outcome = reconciler.handle_subscription_success(session.id)
            else:
                outcome = reconciler.handle_payment_success(session.id)
            return jsonify({'status': 'success', 'result': outcome.to_dict()})

        if event_type == 'checkout.session.expired':
            session = CheckoutSession.from_stripe(event.data.object)
            payment = reconciler.mark_payment_failed(session)
            return jsonify({'status': 'success', 'payment': payment.to_dict() if payment else None})

        if event_type == 'customer.subscription.deleted':
            canceled = reconciler.cancel_subscription(event.data.object.id)
            return jsonify({'status': 'success', 'canceled': [s.id for s in canceled]})

    except (MalformedSession, NotFound) as e:
        logger.warning(f"Ignoring {event_type} event {event.id}: {str(e)}")
        return jsonify({'status': 'ignored', 'reason': str(e)})
    except GatewayUnavailable as e:
        logger.error(f"Could not process {event_type} event {event.id}: {str(e)}")
        return jsonify({'error': 'Payment gateway unavailable'}), 502

    return jsonify({'status': 'ignored', 'type': event_type})

import stripe
import logging

from ..errors import GatewayUnavailable, MalformedSession
from ..models.payment import to_minor_units

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 200


class GatewayConfig:
    """Stripe credentials and pricing, handed to the gateway at construction"""

    def __init__(self, secret_key, webhook_secret=None, currency='eur',
                 subscription_name='Monthly subscription', subscription_description='',
                 subscription_price_cents=2999, subscription_interval='month'):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.subscription_name = subscription_name
        self.subscription_description = subscription_description
        self.subscription_price_cents = subscription_price_cents
        self.subscription_interval = subscription_interval

    @classmethod
    def from_app_config(cls, config):
        return cls(
            secret_key=config.get('STRIPE_SECRET_KEY'),
            webhook_secret=config.get('STRIPE_WEBHOOK_SECRET'),
            currency=config.get('STRIPE_CURRENCY', 'eur'),
            subscription_name=config.get('SUBSCRIPTION_NAME', 'Monthly subscription'),
            subscription_description=config.get('SUBSCRIPTION_DESCRIPTION', ''),
            subscription_price_cents=config.get('SUBSCRIPTION_PRICE_CENTS', 2999),
            subscription_interval=config.get('SUBSCRIPTION_INTERVAL', 'month'),
        )


class CheckoutSession:
    """The fields of a Stripe checkout session the reconciler relies on"""

    def __init__(self, id, url=None, payment_status=None, status=None, mode=None,
                 customer_id=None, subscription_id=None, payment_intent_id=None,
                 client_reference_id=None, customer_email=None, metadata=None):
        self.id = id
        self.url = url
        self.payment_status = payment_status
        self.status = status
        self.mode = mode
        self.customer_id = customer_id
        self.subscription_id = subscription_id
        self.payment_intent_id = payment_intent_id
        self.client_reference_id = client_reference_id
        self.customer_email = customer_email
        self.metadata = metadata or {}

    @property
    def is_paid(self):
        return self.payment_status == 'paid'

    @property
    def is_complete(self):
        return self.status == 'complete'

    @property
    def user_id(self):
        """User the session was opened for: our metadata first, then Stripe's email"""
        return self.metadata.get('user_id') or self.customer_email

    @classmethod
    def from_stripe(cls, obj):
        customer_details = _as_dict(getattr(obj, 'customer_details', None))
        return cls(
            id=getattr(obj, 'id', None),
            url=getattr(obj, 'url', None),
            payment_status=getattr(obj, 'payment_status', None),
            status=getattr(obj, 'status', None),
            mode=getattr(obj, 'mode', None),
            customer_id=_object_id(getattr(obj, 'customer', None)),
            subscription_id=_object_id(getattr(obj, 'subscription', None)),
            payment_intent_id=_object_id(getattr(obj, 'payment_intent', None)),
            client_reference_id=getattr(obj, 'client_reference_id', None),
            customer_email=getattr(obj, 'customer_email', None) or customer_details.get('email'),
            metadata=_as_dict(getattr(obj, 'metadata', None)),
        )

    def __repr__(self):
        return f'<CheckoutSession {self.id} {self.payment_status}/{self.status}>'


def _object_id(value):
    # Stripe returns either the id or the expanded object
    if value is None or isinstance(value, str):
        return value
    return getattr(value, 'id', None)


def _as_dict(value):
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    return {}


def _truncate(text, limit=DESCRIPTION_LIMIT):
    if not text:
        return None
    return text if len(text) <= limit else text[:limit] + '...'


class StripeGateway:
    """Hosted checkout sessions on Stripe.

    The secret key travels with every call instead of being assigned to the
    module-wide ``stripe.api_key``.
    """

    def __init__(self, config):
        self.config = config

    def _request(self, description, func, *args, **kwargs):
        if not self.config.secret_key:
            raise GatewayUnavailable('Stripe secret key is not configured')
        try:
            return func(*args, api_key=self.config.secret_key, **kwargs)
        except stripe.InvalidRequestError as e:
            logger.error(f"Stripe rejected {description}: {str(e)}")
            raise MalformedSession(str(e)) from e
        except stripe.StripeError as e:
            logger.error(f"Stripe error during {description}: {str(e)}")
            raise GatewayUnavailable(str(e)) from e

    def _create_session(self, params):
        return self._request('session creation', stripe.checkout.Session.create, **params)

    def _retrieve_session(self, session_id):
        return self._request('session lookup', stripe.checkout.Session.retrieve, session_id)

    def create_checkout_session(self, course, customer_email, success_url, cancel_url, metadata=None):
        params = {
            'payment_method_types': ['card'],
            'line_items': [{
                'price_data': {
                    'currency': self.config.currency,
                    'product_data': {
                        'name': course.title,
                        'description': _truncate(course.description),
                    },
                    'unit_amount': to_minor_units(course.price),
                },
                'quantity': 1,
            }],
            'mode': 'payment',
            'success_url': success_url,
            'cancel_url': cancel_url,
            'client_reference_id': str(course.id),
            'customer_email': customer_email,
            'metadata': metadata or {},
        }
        logger.info(f"Creating checkout session for course {course.id} ({customer_email})")
        return self._checked(CheckoutSession.from_stripe(self._create_session(params)))

    def create_subscription_session(self, customer_email, success_url, cancel_url, metadata=None):
        params = {
            'payment_method_types': ['card'],
            'line_items': [{
                'price_data': {
                    'currency': self.config.currency,
                    'product_data': {
                        'name': self.config.subscription_name,
                        'description': self.config.subscription_description or None,
                    },
                    'unit_amount': self.config.subscription_price_cents,
                    'recurring': {'interval': self.config.subscription_interval},
                },
                'quantity': 1,
            }],
            'mode': 'subscription',
            'success_url': success_url,
            'cancel_url': cancel_url,
            'customer_email': customer_email,
            'metadata': metadata or {},
        }
        logger.info(f"Creating subscription session for {customer_email}")
        return self._checked(CheckoutSession.from_stripe(self._create_session(params)))

    def get_session(self, session_id):
        if not session_id:
            raise MalformedSession('Missing checkout session id')
        session = CheckoutSession.from_stripe(self._retrieve_session(session_id))
        if not session.id:
            raise MalformedSession(f'Stripe returned a session without id for {session_id}')
        return session

    def construct_event(self, payload, sig_header):
        """Verify the Stripe-Signature header; raises ValueError or stripe.SignatureVerificationError"""
        if not self.config.webhook_secret:
            raise stripe.SignatureVerificationError('Webhook secret is not configured', sig_header)
        if not sig_header:
            raise stripe.SignatureVerificationError('Missing Stripe-Signature header', sig_header)
        return stripe.Webhook.construct_event(payload, sig_header, self.config.webhook_secret)

    @staticmethod
    def _checked(session):
        if not session.id or not session.url:
            raise GatewayUnavailable('Stripe returned a session without id or url')
        return session

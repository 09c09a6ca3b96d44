import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()

class Config:
    # Flask Configuration
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///academy.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Debug Configuration
    DEBUG = os.getenv('FLASK_ENV') == 'development'

    # Stripe Configuration
    STRIPE_PUBLIC_KEY = os.getenv('STRIPE_PUBLIC_KEY')
    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET')
    STRIPE_CURRENCY = os.getenv('STRIPE_CURRENCY', 'eur')

    # Monthly platform subscription
    SUBSCRIPTION_NAME = os.getenv('SUBSCRIPTION_NAME', 'Monthly subscription - unlimited access')
    SUBSCRIPTION_DESCRIPTION = 'Full access to every course on the platform'
    SUBSCRIPTION_PRICE_CENTS = int(os.getenv('SUBSCRIPTION_PRICE_CENTS', '2999'))
    SUBSCRIPTION_INTERVAL = os.getenv('SUBSCRIPTION_INTERVAL', 'month')

    # Lesson video uploads
    VIDEO_UPLOAD_FOLDER = os.getenv('VIDEO_UPLOAD_FOLDER', os.path.join(os.getcwd(), 'static', 'videos'))
    VIDEO_URL_PREFIX = '/videos/'
    MAX_VIDEO_SIZE = 200 * 1024 * 1024
    ALLOWED_VIDEO_EXTENSIONS = {'.mp4', '.webm', '.ogg', '.mp3'}

    # Logging Configuration
    LOGGING = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'standard'
            }
        },
        'root': {
            'level': 'INFO',
            'handlers': ['console']
        }
    }

    # Session Configuration
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    STRIPE_SECRET_KEY = 'sk_test_dummy'
    STRIPE_WEBHOOK_SECRET = 'whsec_test'

from .settings import *

DEBUG = False
SECRET_KEY = "test-secret-key"

# Threaded tests need one database shared across connections.
# IMMEDIATE makes concurrent writers wait on the lock instead of failing.
TEST_DB_PATH = str(BASE_DIR / 'test_db.sqlite3')

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': TEST_DB_PATH,
        'TEST': {'NAME': TEST_DB_PATH},
        'OPTIONS': {
            'transaction_mode': 'IMMEDIATE',
            'timeout': 20,
        },
    }
}

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

PUSH_NOTIFICATIONS = {**PUSH_NOTIFICATIONS, "ENABLED": False}

DISPATCH = {**DISPATCH, "BROADCAST_CITIES": []}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {'null': {'class': 'logging.NullHandler'}},
    'root': {'handlers': ['null'], 'level': 'CRITICAL'},
}

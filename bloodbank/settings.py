"""
Django settings for the bloodbank project.

Values come from environment variables with development defaults.
"""
import os
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-only-secret-key-change-me')
DEBUG = os.environ.get('DJANGO_DEBUG', 'true').lower() in ('1', 'true', 'yes')
ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]


# ========================================
# APPLICATIONS
# ========================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    'rest_framework',

    'donors',
    'inventory',
    'recipients',
    'api',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'bloodbank.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'bloodbank.wsgi.application'


# ========================================
# DATABASE
# ========================================

if os.environ.get('DB_ENGINE', 'sqlite') == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ.get('DB_NAME', 'bloodbank'),
            'USER': os.environ.get('DB_USER', 'bloodbank'),
            'PASSWORD': os.environ.get('DB_PASSWORD', ''),
            'HOST': os.environ.get('DB_HOST', 'localhost'),
            'PORT': os.environ.get('DB_PORT', '5432'),
            'ATOMIC_REQUESTS': False,
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('DJANGO_TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'


# ========================================
# REST FRAMEWORK
# ========================================

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'EXCEPTION_HANDLER': 'api.exceptions.domain_exception_handler',
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 100,
}


# ========================================
# CELERY
# ========================================

CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = os.environ.get('CELERY_TASK_ALWAYS_EAGER', 'false').lower() in ('1', 'true', 'yes')

CELERY_BEAT_SCHEDULE = {
    'expire-lapsed-blood-units': {
        'task': 'inventory.tasks.expire_lapsed_units',
        'schedule': crontab(hour=0, minute=15),
    },
}


# ========================================
# BLOOD BANK RULES
# ========================================

# Days from collection to expiry for a whole blood unit
BLOOD_UNIT_SHELF_LIFE_DAYS = int(os.environ.get('BLOOD_UNIT_SHELF_LIFE_DAYS', 42))

# Minimum days between whole blood donations (8 weeks)
MIN_DONATION_INTERVAL_DAYS = int(os.environ.get('MIN_DONATION_INTERVAL_DAYS', 56))

# Per donation type overrides, merged over algorithms.eligibility.DONATION_INTERVAL_DAYS
DONATION_INTERVAL_DAYS = {}

# Refuse transfusions whose unit blood type the recipient cannot receive
ENFORCE_ABO_COMPATIBILITY = os.environ.get('ENFORCE_ABO_COMPATIBILITY', 'true').lower() in ('1', 'true', 'yes')

# Actor recorded in status history by the nightly expiry sweep
EXPIRY_SWEEP_ACTOR = 'System'


# ========================================
# LOGGING
# ========================================

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'algorithms': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'donors': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'inventory': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'recipients': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'api': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'bloodbank': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}

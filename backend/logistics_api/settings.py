import os
import secrets
from pathlib import Path

from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / '.env')


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get('SECRET_KEY', secrets.token_hex(32))

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False') == 'True'

ALLOWED_HOSTS = [
    host for host in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if host
]


# Application definition

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',

    'rest_framework',

    'common',
    'hos_compliance',
    'risk_analysis',
    'routes',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'logistics_api.urls'

WSGI_APPLICATION = 'logistics_api.wsgi.application'


# Database
# The analysis engine keeps no state; the database only backs Django itself.

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}


# Internationalization

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# REST Framework settings
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
    'UNAUTHENTICATED_USER': None,
}


# Regulatory policy (minutes), see hos_compliance.policy.RestRegulationPolicy
RTO_POLICY = {
    'max_continuous_driving_minutes': int(os.getenv('RTO_MAX_CONTINUOUS_DRIVING_MINUTES', 270)),
    'max_daily_driving_minutes': int(os.getenv('RTO_MAX_DAILY_DRIVING_MINUTES', 600)),
    'max_weekly_driving_minutes': int(os.getenv('RTO_MAX_WEEKLY_DRIVING_MINUTES', 3360)),
    'max_two_week_driving_minutes': int(os.getenv('RTO_MAX_TWO_WEEK_DRIVING_MINUTES', 5400)),
    'short_break_minutes': int(os.getenv('RTO_SHORT_BREAK_MINUTES', 45)),
    'daily_rest_minutes': int(os.getenv('RTO_DAILY_REST_MINUTES', 660)),
    'weekly_rest_minutes': int(os.getenv('RTO_WEEKLY_REST_MINUTES', 2700)),
}

# Overall risk factor weights, normalised to sum to 1
RISK_FACTOR_WEIGHTS = {
    'weather': 0.35,
    'road_quality': 0.25,
    'traffic': 0.20,
    'cargo': 0.20,
}

REST_STOP_SEARCH_RADIUS_KM = float(os.getenv('REST_STOP_SEARCH_RADIUS_KM', 15))
ANALYSIS_MAX_WORKERS = int(os.getenv('ANALYSIS_MAX_WORKERS', 4))


# External collaborators
EXTERNAL_API_TIMEOUT = float(os.getenv('EXTERNAL_API_TIMEOUT', 10))

OPENROUTESERVICE_API_KEY = os.environ.get('OPENROUTESERVICE_API_KEY', None)

OPENWEATHER_API_KEY = os.environ.get('OPENWEATHER_API_KEY', None)
OPENWEATHER_BASE_URL = os.environ.get('OPENWEATHER_BASE_URL', 'https://api.openweathermap.org/data/2.5')

OVERPASS_URL = os.environ.get('OVERPASS_URL', 'https://overpass-api.de/api/interpreter')

FUEL_PRICE_API_URL = os.environ.get('FUEL_PRICE_API_URL', None)
FUEL_PRICE_API_KEY = os.environ.get('FUEL_PRICE_API_KEY', None)

ROAD_CONDITIONS_API_URL = os.environ.get('ROAD_CONDITIONS_API_URL', None)


# Cache configuration
LOOKUP_CACHE_TTL = int(os.getenv('LOOKUP_CACHE_TTL', 60 * 60))
LOOKUP_CACHE_PRECISION = int(os.getenv('LOOKUP_CACHE_PRECISION', 2))

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'route-compliance-default',
    },
    'external_lookups': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'route-compliance-lookups',
        'TIMEOUT': LOOKUP_CACHE_TTL,
        'OPTIONS': {
            'MAX_ENTRIES': int(os.getenv('LOOKUP_CACHE_MAX_ENTRIES', 5000)),
        },
    },
}


# Logging Configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
        },
        'hos_compliance': {
            'handlers': ['console'],
            'level': os.getenv('APP_LOG_LEVEL', 'INFO'),
        },
        'risk_analysis': {
            'handlers': ['console'],
            'level': os.getenv('APP_LOG_LEVEL', 'INFO'),
        },
        'routes': {
            'handlers': ['console'],
            'level': os.getenv('APP_LOG_LEVEL', 'INFO'),
        },
    },
}

from pathlib import Path
import os
import sys

import environ
from django.core.exceptions import ImproperlyConfigured

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
)

# Optional local env file support (container deployments set env vars directly).
environ.Env.read_env(os.path.join(BASE_DIR, ".env"))

DEBUG = env.bool("DEBUG", default=False)

# Commands that never serve requests can run without production secrets
# (e.g. `migrate` in an image build step, or the test suite).
_RELAXED_COMMANDS = {
    "check",
    "collectstatic",
    "makemigrations",
    "migrate",
    "rounds",
    "shell",
    "showmigrations",
    "test",
}
_RUNNING_RELAXED_COMMAND = len(sys.argv) > 1 and sys.argv[1] in _RELAXED_COMMANDS
_RUNNING_PYTEST = "pytest" in sys.modules
REQUIRE_RUNTIME_SECRETS = not DEBUG and not (_RUNNING_RELAXED_COMMAND or _RUNNING_PYTEST)

SECRET_KEY = env(
    "SECRET_KEY",
    default="django-insecure-dev-only-change-me",
)
if REQUIRE_RUNTIME_SECRETS and SECRET_KEY.startswith("django-insecure-dev-only"):
    raise ImproperlyConfigured("SECRET_KEY must be set in production.")

_dev_allowed_hosts = ["localhost", "127.0.0.1", "[::1]", "testserver"]
ALLOWED_HOSTS = env.list(
    "ALLOWED_HOSTS",
    default=_dev_allowed_hosts if not REQUIRE_RUNTIME_SECRETS else [],
)
if REQUIRE_RUNTIME_SECRETS and not ALLOWED_HOSTS:
    raise ImproperlyConfigured("ALLOWED_HOSTS must be set in production.")

INSTALLED_APPS = [
    'jazzmin',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'voting',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'voting.middleware.VotingContextMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

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

WSGI_APPLICATION = 'config.wsgi.application'

# Database
# DATABASE_URL wins; otherwise discrete DATABASE_* variables (handy when the
# password is injected as a separate secret); otherwise a local SQLite file.
if env("DATABASE_URL", default=""):
    DATABASES = {"default": env.db("DATABASE_URL")}
elif env("DATABASE_HOST", default=""):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "HOST": env("DATABASE_HOST"),
            "PORT": env("DATABASE_PORT", default="5432"),
            "NAME": env("DATABASE_NAME", default="ballot"),
            "USER": env("DATABASE_USER", default="ballot"),
            "PASSWORD": env("DATABASE_PASSWORD", default=""),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

JAZZMIN_SETTINGS = {
    "site_title": "Ballot console",
    "site_header": "Ballot console",
    "welcome_sign": "Voting rounds administration",
}

# Password validation
# https://docs.djangoproject.com/en/5.0/ref/settings/#auth-password-validators
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Security
# Production-oriented but configurable; deployments usually sit behind a
# TLS-terminating proxy.
if not DEBUG:
    if env.bool("SECURE_PROXY_SSL", default=True):
        SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

    SECURE_SSL_REDIRECT = env.bool("SECURE_SSL_REDIRECT", default=False)
    SESSION_COOKIE_SECURE = env.bool("SESSION_COOKIE_SECURE", default=True)
    CSRF_COOKIE_SECURE = env.bool("CSRF_COOKIE_SECURE", default=True)
    SECURE_CONTENT_TYPE_NOSNIFF = True
    SECURE_REFERRER_POLICY = env("SECURE_REFERRER_POLICY", default="same-origin")

    # HSTS is opt-in because it can brick HTTP-only deployments.
    SECURE_HSTS_SECONDS = env.int("SECURE_HSTS_SECONDS", default=0)

    CSRF_TRUSTED_ORIGINS = env.list("CSRF_TRUSTED_ORIGINS", default=[])

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / "staticfiles"

LOGIN_URL = '/admin/login/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Voting engine
VOTING_DEVICE_ID_SALT = env("VOTING_DEVICE_ID_SALT", default="voting.device-identity")
VOTING_DEVICE_SIGNAL_FIELDS = env.list(
    "VOTING_DEVICE_SIGNAL_FIELDS",
    default=["user_agent", "language", "platform", "screen_resolution", "timezone", "ip_address"],
)
# Lifetime of the signed "already voted" cookie. UX only; never trusted.
VOTING_VOTED_COOKIE_MAX_AGE_SECONDS = env.int("VOTING_VOTED_COOKIE_MAX_AGE_SECONDS", default=60 * 60 * 24 * 30)
# Only enable behind a proxy that overwrites X-Forwarded-For.
VOTING_TRUST_X_FORWARDED_FOR = env.bool("VOTING_TRUST_X_FORWARDED_FOR", default=False)

# Logging
# App logs go to container stdout; probe requests are filtered out.
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'filters': {
        'skip_healthz': {
            '()': 'voting.logging_filters.SkipHealthzFilter',
        },
        'redact_device_ids': {
            '()': 'voting.logging_filters.RedactDeviceIdFilter',
        },
    },
    'formatters': {
        'console': {
            'format': '[{asctime}] {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'console',
            'filters': ['skip_healthz', 'redact_device_ids'],
        },
    },
    'loggers': {
        'voting': {
            'handlers': ['console'],
            'level': 'DEBUG' if DEBUG else 'INFO',
            'propagate': False,
        },
        'django.request': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
        'django.server': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

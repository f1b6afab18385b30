"""Django settings for the Linear Timeline project."""

from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
)
environ.Env.read_env(BASE_DIR / ".env")

SECRET_KEY = env("DJANGO_SECRET_KEY")
DEBUG = env("DEBUG")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["*"])

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.staticfiles",
    "rest_framework",
    "timeline",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "timeline.middleware.AccessGateMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# Only Django's contrib apps touch the database; sessions live in the cache.
DATABASES = {"default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}")}

CACHES = {"default": env.cache("CACHE_URL", default="locmemcache://")}

LANGUAGE_CODE = "en-us"
TIME_ZONE = env("TIME_ZONE", default="UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Sessions: the provider access token stays server-side, the cookie only
# carries the opaque session key.
SESSION_ENGINE = "django.contrib.sessions.backends.cache"
SESSION_COOKIE_AGE = env.int("SESSION_COOKIE_AGE", default=30 * 24 * 60 * 60)
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = "Lax"
SESSION_COOKIE_SECURE = not DEBUG

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
}

# Logging
LOG_LEVEL = env("LOG_LEVEL", default="INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "loggers": {
        "integrations": {"handlers": ["console"], "level": LOG_LEVEL},
        "timeline": {"handlers": ["console"], "level": LOG_LEVEL},
    },
}

# Linear OAuth
LINEAR_CLIENT_ID = env("LINEAR_CLIENT_ID", default="")
LINEAR_CLIENT_SECRET = env("LINEAR_CLIENT_SECRET", default="")
LINEAR_AUTHORIZE_URL = env("LINEAR_AUTHORIZE_URL", default="https://linear.app/oauth/authorize")
LINEAR_TOKEN_URL = env("LINEAR_TOKEN_URL", default="https://api.linear.app/oauth/token")
LINEAR_OAUTH_SCOPE = env("LINEAR_OAUTH_SCOPE", default="read")
# Empty means "derive from the incoming request".
LINEAR_REDIRECT_URI = env("LINEAR_REDIRECT_URI", default="")
OAUTH_STATE_MAX_AGE = env.int("OAUTH_STATE_MAX_AGE", default=600)

# Linear GraphQL API
LINEAR_API_URL = env("LINEAR_API_URL", default="https://api.linear.app/graphql")
LINEAR_ISSUE_PAGE_SIZE = 100
# Linear caps a connection page at 250; the default would be 50.
LINEAR_USER_PAGE_SIZE = 250
LINEAR_ISSUE_LOOKBACK_DAYS = 30

# Public base URL used for post-login redirects; empty means "derive from the request".
APP_BASE_URL = env("APP_BASE_URL", default="")

# Access gate
LOGIN_ENTRY_POINT = "/api/auth/signin"
ACCESS_GATE_PUBLIC_PATHS = env.list(
    "ACCESS_GATE_PUBLIC_PATHS", default=["/", "/api/auth", "/api/health"]
)

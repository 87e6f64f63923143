"""
Django settings for the tabungan project.

Scope:
- users, roles and audit trail
- santri records and bulk import
- ledger transactions (setor / tarik / reversal) with PDF receipts
- reports, dashboards and feedback archive
"""
import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name, default='False'):
    return os.getenv(name, default).lower() in {'1', 'true', 'yes'}


DEBUG = _env_flag('DJANGO_DEBUG')
SECRET_KEY = os.getenv(
    'DJANGO_SECRET_KEY',
    'change-this-secret-key-in-production-7d0b3c5e2a8f4e19b6c1d2e3f4a5b6c7',
)
ALLOWED_HOSTS = [
    host.strip()
    for host in os.getenv('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')
    if host.strip()
]


INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'django.contrib.humanize',
    'apps.core.apps.CoreConfig',
    'apps.core.users.apps.UsersConfig',
    'apps.core.students.apps.StudentsConfig',
    'apps.core.ledger.apps.LedgerConfig',
    'apps.core.reports.apps.ReportsConfig',
    'apps.core.feedback.apps.FeedbackConfig',
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


ROOT_URLCONF = 'tabungan.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'tabungan.wsgi.application'


# Storage calls must not hang a cashier's request; both backends get a bounded wait.
DB_TIMEOUT_SECONDS = int(os.getenv('TABUNGAN_DB_TIMEOUT', '10'))

if os.getenv('TABUNGAN_DB_ENGINE', 'sqlite').lower() in {'postgres', 'postgresql'}:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('TABUNGAN_DB_NAME', 'tabungan_santri'),
            'USER': os.getenv('TABUNGAN_DB_USER', 'postgres'),
            'PASSWORD': os.getenv('TABUNGAN_DB_PASSWORD', ''),
            'HOST': os.getenv('TABUNGAN_DB_HOST', 'localhost'),
            'PORT': os.getenv('TABUNGAN_DB_PORT', '5432'),
            'OPTIONS': {
                'connect_timeout': DB_TIMEOUT_SECONDS,
                'options': f'-c statement_timeout={DB_TIMEOUT_SECONDS * 1000}',
            },
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
            'OPTIONS': {
                'timeout': DB_TIMEOUT_SECONDS,
            },
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
]


LANGUAGE_CODE = 'id'
TIME_ZONE = 'Asia/Jakarta'
USE_I18N = True
USE_TZ = True


STATIC_URL = 'static/'
MEDIA_URL = '/media/'
MEDIA_ROOT = Path(os.getenv('TABUNGAN_MEDIA_ROOT', BASE_DIR / 'media'))
AUTH_USER_MODEL = 'users.User'

# Receipts and signature images live outside MEDIA_ROOT; they are served only through
# the authenticated receipt view.
TABUNGAN_STORAGE_DIR = Path(os.getenv('TABUNGAN_STORAGE_DIR', BASE_DIR / 'storage'))
PDF_LOGO_PATH = os.getenv('PDF_LOGO_PATH') or None
PDF_STAMP_PATH = os.getenv('PDF_STAMP_PATH') or None

STUDENT_PHOTO_MAX_BYTES = 2 * 1024 * 1024
STUDENT_IMPORT_MAX_BYTES = 5 * 1024 * 1024


CSRF_COOKIE_SECURE = not DEBUG
SESSION_COOKIE_SECURE = not DEBUG
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = 'Lax'
SESSION_COOKIE_AGE = 86400
SECURE_SSL_REDIRECT = _env_flag('DJANGO_SECURE_SSL_REDIRECT')
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')


LOGIN_REDIRECT_URL = '/dashboard/'
LOGOUT_REDIRECT_URL = '/login/'
LOGIN_URL = '/login/'

TEST_RUNNER = 'apps.core.test_runner.InstalledAppsOnlyDiscoverRunner'


LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': os.getenv('TABUNGAN_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

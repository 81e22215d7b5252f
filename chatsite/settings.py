"""
Django settings for chatsite project.
Production-ready for Koyeb + Supabase + Cloudinary
"""

import os
import dj_database_url
from pathlib import Path

# Build paths
BASE_DIR = Path(__file__).resolve().parent.parent

# ==================== SECURITY ====================
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-chat-dev-key-change-me')
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

# Allow all Koyeb subdomains
ALLOWED_HOSTS = ['localhost', '127.0.0.1', 'testserver']
if os.getenv('ALLOWED_HOSTS'):
    ALLOWED_HOSTS.extend(os.getenv('ALLOWED_HOSTS').split(','))
elif not DEBUG:
    ALLOWED_HOSTS += ['.koyeb.app']

# CSRF for the admin; the JSON API is csrf-exempt and token authenticated
CSRF_TRUSTED_ORIGINS = []
if os.getenv('CSRF_TRUSTED_ORIGINS'):
    CSRF_TRUSTED_ORIGINS.extend(os.getenv('CSRF_TRUSTED_ORIGINS').split(','))
elif not DEBUG:
    CSRF_TRUSTED_ORIGINS = ['https://*.koyeb.app']

# ==================== APPLICATIONS ====================
INSTALLED_APPS = [
    'chat',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

# Conditional: Cloudinary for media
USE_CLOUDINARY = bool(os.getenv('CLOUDINARY_CLOUD_NAME'))
if USE_CLOUDINARY:
    INSTALLED_APPS += ['cloudinary_storage', 'cloudinary']

# ==================== MIDDLEWARE ====================
MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'chat.middleware.ClerkAuthenticationMiddleware',
    'chat.middleware.PresenceMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

# ==================== TEMPLATES ====================
ROOT_URLCONF = 'chatsite.urls'
WSGI_APPLICATION = 'chatsite.wsgi.application'

# Admin only
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

# ==================== DATABASE (SUPABASE) ====================
DATABASE_URL = os.getenv('DATABASE_URL', '')

if DATABASE_URL and 'postgres' in DATABASE_URL:
    # Supabase PostgreSQL with SSL
    DATABASES = {
        'default': dj_database_url.config(
            default=DATABASE_URL,
            conn_max_age=600,
            conn_health_checks=True,
            ssl_require=True,
        )
    }
    if 'supabase' in DATABASE_URL:
        DATABASES['default']['OPTIONS'] = {
            'sslmode': 'require',
            'options': '-c search_path=public'
        }
else:
    # Fallback to SQLite for development
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

# ==================== AUTHENTICATION ====================
AUTH_USER_MODEL = "chat.User"

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

# ==================== CLERK ====================
# Frontend API URL of the Clerk instance, e.g. https://example.clerk.accounts.dev
CLERK_JWT_ISSUER_DOMAIN = os.getenv('CLERK_JWT_ISSUER_DOMAIN', 'https://clerk.localhost')
CLERK_WEBHOOK_SIGNING_SECRET = os.getenv('CLERK_WEBHOOK_SIGNING_SECRET', '')
CLERK_JWT_LEEWAY = int(os.getenv('CLERK_JWT_LEEWAY', 10))  # seconds

# ==================== WEB PUSH ====================
VAPID_PUBLIC_KEY = os.getenv('VAPID_PUBLIC_KEY', '')
VAPID_PRIVATE_KEY = os.getenv('VAPID_PRIVATE_KEY', '')
WEB_PUSH_CONTACT = os.getenv('WEB_PUSH_CONTACT', 'mailto:notifications@localhost')

# ==================== CHAT ====================
CHAT_MESSAGE_RETENTION_HOURS = int(os.getenv('CHAT_MESSAGE_RETENTION_HOURS', 24))
CHAT_RETENTION_BATCH_SIZE = int(os.getenv('CHAT_RETENTION_BATCH_SIZE', 500))
CHAT_MAX_UPLOAD_SIZE = int(os.getenv('CHAT_MAX_UPLOAD_SIZE', 25 * 1024 * 1024))  # 25MB
CHAT_PLACEHOLDER_IMAGE = os.getenv('CHAT_PLACEHOLDER_IMAGE', '/placeholder.png')

# ==================== INTERNATIONALIZATION ====================
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# ==================== STATIC & MEDIA FILES ====================
STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

MEDIA_URL = '/media/'
MEDIA_ROOT = BASE_DIR / 'media'

if USE_CLOUDINARY:
    # Cloudinary for production
    CLOUDINARY_STORAGE = {
        'CLOUD_NAME': os.getenv('CLOUDINARY_CLOUD_NAME'),
        'API_KEY': os.getenv('CLOUDINARY_API_KEY'),
        'API_SECRET': os.getenv('CLOUDINARY_API_SECRET'),
    }
    DEFAULT_STORAGE_BACKEND = 'cloudinary_storage.storage.MediaCloudinaryStorage'
    # Message attachments are arbitrary files (video, audio, pdf, ...)
    MESSAGE_STORAGE_BACKEND = 'cloudinary_storage.storage.RawMediaCloudinaryStorage'
else:
    # Local media for development
    DEFAULT_STORAGE_BACKEND = 'django.core.files.storage.FileSystemStorage'
    MESSAGE_STORAGE_BACKEND = 'django.core.files.storage.FileSystemStorage'

STORAGES = {
    'default': {'BACKEND': DEFAULT_STORAGE_BACKEND},
    'messages': {'BACKEND': MESSAGE_STORAGE_BACKEND},
    'staticfiles': {'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage'},
}

# ==================== FILE UPLOAD ====================
FILE_UPLOAD_HANDLERS = [
    'django.core.files.uploadhandler.MemoryFileUploadHandler',
    'django.core.files.uploadhandler.TemporaryFileUploadHandler',
]
DATA_UPLOAD_MAX_MEMORY_SIZE = 10 * 1024 * 1024  # 10MB
FILE_UPLOAD_MAX_MEMORY_SIZE = 5 * 1024 * 1024   # 5MB

# ==================== CACHE ====================
# Presence throttling; use a shared backend when running several workers
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

# ==================== SECURITY HEADERS ====================
if not DEBUG:
    # Koyeb proxy settings
    SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

    # HTTPS redirect
    SECURE_SSL_REDIRECT = True
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True

    # Cookie security
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    CSRF_COOKIE_HTTPONLY = True

    # Browser security
    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = 'DENY'
    SECURE_REFERRER_POLICY = 'same-origin'

# ==================== LOGGING ====================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
        'console_verbose': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO' if DEBUG else 'WARNING',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': True,
        },
        'django.db.backends': {
            'level': 'ERROR',
            'handlers': ['console'],
            'propagate': False,
        },
        'chat': {
            'handlers': ['console_verbose'],
            'level': os.getenv('CHAT_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

# ==================== MISC ====================
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

SESSION_ENGINE = 'django.contrib.sessions.backends.db'
SESSION_COOKIE_AGE = 1209600  # 2 weeks in seconds

# File type fixes
import mimetypes
mimetypes.add_type('video/mp4', '.mp4')
mimetypes.add_type('image/webp', '.webp')
mimetypes.add_type('audio/ogg', '.ogg')

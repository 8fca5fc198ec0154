"""
Django settings module loader.

Selects the settings module from the DJANGO_ENV environment variable
("production"/"prod", "test", anything else falls back to development).
"""

import os

env = os.getenv("DJANGO_ENV", "development").lower()

if env in ("production", "prod"):
    from .production import *
elif env == "test":
    from .test import *
else:
    from .development import *

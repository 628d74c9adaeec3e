"""
Static configuration: upstream URLs, storage location, user-facing copy.
"""

import os
from pathlib import Path

__version__ = "0.1.0"

DEFAULT_SETUP_URL = "https://setup.icloud.com/setup/ws/1"
CN_SETUP_URL = "https://setup.icloud.com.cn/setup/ws/1"
SETUP_URLS = (DEFAULT_SETUP_URL, CN_SETUP_URL)

PREMIUM_MAIL_SERVICE = "premiummailsettings"

# Applied to every upstream request; stands in for the declarative
# Origin/Referer rewrite rules.
UPSTREAM_ORIGIN_HEADERS = {
    "Origin": "https://www.icloud.com",
    "Referer": "https://www.icloud.com/",
}

DEFAULT_HEADERS = {
    "User-Agent": f"hidemyemail/{__version__}",
    "Accept": "application/json",
    **UPSTREAM_ORIGIN_HEADERS,
}

HTTP_TIMEOUT_S = 30.0

DEFAULT_NOTE = "Generated through the iCloud Hide My Email browser extension"

CONTEXT_MENU_ITEM_ID = "hidemyemail/hme_generation_and_reservation"

LOADING_COPY = "Hide My Email — Loading..."
SIGNED_OUT_CTA_COPY = "Please sign-in to iCloud"
SIGNED_IN_CTA_COPY = "Generate and reserve Hide My Email address"
NOTIFICATION_TITLE_COPY = "iCloud HideMyEmail Extension"
NOTIFICATION_MESSAGE_COPY = "The iCloud HideMyEmail extension is ready to use!"

STORE_PATH_ENV = "HME_STORE_PATH"
SETUP_URL_ENV = "HME_SETUP_URL"
DEFAULT_STORE_PATH = Path.home() / ".hidemyemail" / "store.json"


def store_path() -> Path:
    override = os.environ.get(STORE_PATH_ENV)
    return Path(override).expanduser() if override else DEFAULT_STORE_PATH


def default_setup_url() -> str:
    return os.environ.get(SETUP_URL_ENV, DEFAULT_SETUP_URL).rstrip("/")

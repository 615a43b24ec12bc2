"""
Authentication module for slackauth.

Provides:
- Chrome session extraction (localStorage token + encrypted d cookie)
- Cookie-based token refresh
- Thread-safe credential storage with atomic persistence
- OAuth v2 (PKCE) user-token flow
"""

from slackauth.auth.chrome import (
    can_extract_from_chrome,
    find_chrome_profiles,
)
from slackauth.auth.cookies import (
    decrypt_cookie_value,
    extract_cookie_from_chrome,
    get_safe_storage_password,
)
from slackauth.auth.localstorage import extract_token_from_leveldb
from slackauth.auth.extractor import (
    ChromeExtractor,
    extract_from_chrome,
    extract_for_web,
)
from slackauth.auth.storage import (
    CredentialStore,
    read_token_info,
    save_tokens,
)
from slackauth.auth.refresh import refresh_via_cookie
from slackauth.auth.providers import (
    CredentialProvider,
    ConfigProvider,
    FileProvider,
    ChromeProvider,
    acquire_first,
)
from slackauth.auth.oauth import OAuthFlowRegistry
from slackauth.auth.manager import (
    CredentialManager,
    classify_token,
)

__all__ = [
    # Chrome extraction
    "can_extract_from_chrome",
    "find_chrome_profiles",
    "decrypt_cookie_value",
    "extract_cookie_from_chrome",
    "get_safe_storage_password",
    "extract_token_from_leveldb",
    "ChromeExtractor",
    "extract_from_chrome",
    "extract_for_web",
    # Storage
    "CredentialStore",
    "read_token_info",
    "save_tokens",
    # Refresh
    "refresh_via_cookie",
    # Providers
    "CredentialProvider",
    "ConfigProvider",
    "FileProvider",
    "ChromeProvider",
    "acquire_first",
    # OAuth
    "OAuthFlowRegistry",
    # Manager
    "CredentialManager",
    "classify_token",
]

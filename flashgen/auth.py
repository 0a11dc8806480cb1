# flashgen/auth.py
"""
Caller identity: maps an API token to the user_id that owns generations.

Tokens arrive as `Authorization: Bearer <token>` or `x-api-key: <token>`.

Env vars:
- MOCK_AUTH (default: true) - every request is DEV_USER_ID; dev only
- DEV_USER_ID (default: 00000000-0000-0000-0000-000000000001)
- API_TOKENS - comma-separated token:user_id pairs
- API_TOKENS_FILE - optional path to a file with one token:user_id pair per line
"""

import os
from typing import Dict, Optional

MOCK_AUTH = os.getenv("MOCK_AUTH", "true").lower() in ("1", "true", "yes")
DEV_USER_ID = os.getenv("DEV_USER_ID", "00000000-0000-0000-0000-000000000001")
API_TOKENS_ENV = os.getenv("API_TOKENS", "")
API_TOKENS_FILE = os.getenv("API_TOKENS_FILE", "")

API_KEY_HEADER = "x-api-key"


def parse_token_pairs(text: str, sep: str = ",") -> Dict[str, str]:
    """Parse "token:user_id" entries; blank and malformed entries are skipped."""
    tokens: Dict[str, str] = {}
    for entry in text.split(sep):
        entry = entry.strip()
        if not entry or entry.startswith("#") or ":" not in entry:
            continue
        token, user_id = entry.split(":", 1)
        token, user_id = token.strip(), user_id.strip()
        if token and user_id:
            tokens[token] = user_id
    return tokens


def _load_api_tokens() -> Dict[str, str]:
    tokens = parse_token_pairs(API_TOKENS_ENV)
    if API_TOKENS_FILE and os.path.exists(API_TOKENS_FILE):
        with open(API_TOKENS_FILE, "r", encoding="utf-8") as f:
            tokens.update(parse_token_pairs(f.read(), sep="\n"))
    return tokens


API_TOKENS = _load_api_tokens()


def extract_token(authorization: Optional[str], api_key: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    if api_key and api_key.strip():
        return api_key.strip()
    return None


def resolve_user_id(authorization: Optional[str] = None,
                    api_key: Optional[str] = None) -> Optional[str]:
    """Return the caller's user_id, or None if the request is not authenticated."""
    if MOCK_AUTH:
        return DEV_USER_ID
    token = extract_token(authorization, api_key)
    if not token:
        return None
    return API_TOKENS.get(token)

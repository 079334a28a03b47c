"""
supabase_client.py
------------------
Supabase Auth (GoTrue REST API) + database (PostgREST REST API) integration.

No extra packages required — uses the existing `requests` library.

Required env vars:
    SUPABASE_URL         — Project URL   (Supabase Dashboard → Project Settings → API)
    SUPABASE_ANON_KEY    — anon public key
Optional:
    SUPABASE_SERVICE_KEY — service-role key; used by headless jobs instead of a user session

If not configured, `is_configured()` returns False and the app runs on mock data.

The app is single-user per process: the signed-in access token is kept at
module level and attached to every PostgREST request. Row-level security on
the backend restricts rows to that user.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Iterable

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_URL         = os.getenv("SUPABASE_URL", "").rstrip("/")
_ANON_KEY    = os.getenv("SUPABASE_ANON_KEY", "")
_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")

_TIMEOUT = 10

# PostgREST error code for "no (or more than one) row returned" on .single()
NOT_FOUND = "PGRST116"

Filter = tuple[str, str, Any]

_session: dict[str, Any] = {"access_token": None, "user": None}

# In-process table store used instead of PostgREST (DATA_MODE=mock, tests)
_local_store: Any = None


class SupabaseError(Exception):
    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class SupabaseNotConfiguredError(SupabaseError):
    pass


# ---------------------------------------------------------------------------
# Configuration check
# ---------------------------------------------------------------------------

def is_configured() -> bool:
    """Return True if Supabase env vars are set."""
    return bool(_URL and _ANON_KEY)


def use_local_store(store: Any) -> None:
    """Route select / insert / update / delete to `store` (None restores PostgREST).

    `store` must expose the same four functions with the same signatures,
    e.g. mock_data.MockStore.
    """
    global _local_store
    _local_store = store
    logger.info("supabase: %s", "using local store" if store is not None else "using PostgREST")


def using_local_store() -> bool:
    return _local_store is not None


def _require_configured() -> None:
    if not is_configured():
        raise SupabaseNotConfiguredError(
            "SUPABASE_URL and SUPABASE_ANON_KEY must be set to use the database."
        )


# ---------------------------------------------------------------------------
# Authentication (GoTrue REST API)
# ---------------------------------------------------------------------------

def sign_in(email: str, password: str) -> dict:
    """Sign in with email + password.

    Returns {uid, email, access_token} on success and stores the session.
    Raises SupabaseError on failure.
    """
    _require_configured()

    resp = requests.post(
        f"{_URL}/auth/v1/token",
        params={"grant_type": "password"},
        headers={"apikey": _ANON_KEY, "Content-Type": "application/json"},
        json={"email": email, "password": password},
        timeout=_TIMEOUT,
    )
    data = _json(resp)
    if not resp.ok:
        msg = data.get("error_description") or data.get("msg") or "Login failed"
        if "invalid" in msg.lower():
            raise SupabaseError("Invalid email or password.")
        if "not confirmed" in msg.lower():
            raise SupabaseError("Please confirm your email address first.")
        raise SupabaseError(msg)

    user = data.get("user") or {}
    set_access_token(data["access_token"], user)
    logger.info("supabase: user signed in — %s", user.get("email"))
    return {
        "uid":          user.get("id"),
        "email":        user.get("email", email),
        "access_token": data["access_token"],
    }


def sign_up(email: str, password: str) -> dict:
    """Create a new account with email + password.

    Returns {uid, email, access_token}; access_token is None when the
    project requires email confirmation before the first login.
    """
    _require_configured()

    resp = requests.post(
        f"{_URL}/auth/v1/signup",
        headers={"apikey": _ANON_KEY, "Content-Type": "application/json"},
        json={"email": email, "password": password},
        timeout=_TIMEOUT,
    )
    data = _json(resp)
    if not resp.ok:
        msg = data.get("msg") or data.get("error_description") or "Registration failed"
        if "already registered" in msg.lower():
            raise SupabaseError("An account with this email already exists.")
        if "password" in msg.lower():
            raise SupabaseError("Password must be at least 6 characters.")
        raise SupabaseError(msg)

    user = data.get("user") or data
    token = data.get("access_token")
    if token:
        set_access_token(token, user)
    logger.info("supabase: new user registered — %s", user.get("email"))
    return {"uid": user.get("id"), "email": user.get("email", email), "access_token": token}


def sign_out() -> None:
    token = _session["access_token"]
    if token and is_configured():
        try:
            requests.post(
                f"{_URL}/auth/v1/logout",
                headers={"apikey": _ANON_KEY, "Authorization": f"Bearer {token}"},
                timeout=_TIMEOUT,
            )
        except requests.RequestException as exc:
            logger.debug("supabase: logout request failed: %s", exc)
    set_access_token(None)


def set_access_token(token: str | None, user: dict | None = None) -> None:
    _session["access_token"] = token
    _session["user"] = user


def current_user() -> dict | None:
    return _session["user"]


def is_authenticated() -> bool:
    return bool(_session["access_token"] or _SERVICE_KEY or _local_store is not None)


# ---------------------------------------------------------------------------
# Database (PostgREST)
# ---------------------------------------------------------------------------

def select(
    table: str,
    columns: str = "*",
    filters: Iterable[Filter] | None = None,
    order: str | None = None,
    limit: int | None = None,
    single: bool = False,
    or_: str | None = None,
) -> Any:
    """SELECT rows from a table or view.

    Args:
        filters: [(column, op, value)] rendered as `column=op.value`
                 e.g. ("ticker", "eq", "AAPL"), ("created_at", "gte", iso)
        order:   PostgREST order clause, e.g. "created_at.desc"
        single:  return one dict; raises SupabaseError(code=PGRST116) on no row
        or_:     raw PostgREST `or` expression, e.g. "(ticker.ilike.*a*,name.ilike.*a*)"
    """
    if _local_store is not None:
        return _local_store.select(table, columns, filters, order, limit, single, or_)

    params = [("select", columns)] + _filter_params(filters)
    if or_:
        params.append(("or", or_))
    if order:
        params.append(("order", order))
    if limit is not None:
        params.append(("limit", str(limit)))

    headers = {}
    if single:
        headers["Accept"] = "application/vnd.pgrst.object+json"
    return _request("GET", table, params=params, headers=headers)


def insert(
    table: str,
    rows: dict | list[dict],
    upsert: bool = False,
    on_conflict: str | None = None,
) -> list[dict]:
    """INSERT (or upsert) rows; returns the stored representation."""
    if _local_store is not None:
        return _local_store.insert(table, rows, upsert, on_conflict)

    prefer = "return=representation"
    if upsert:
        prefer += ",resolution=merge-duplicates"
    params = [("on_conflict", on_conflict)] if on_conflict else []
    data = _request("POST", table, params=params, json=rows, headers={"Prefer": prefer})
    return data if isinstance(data, list) else [data]


def update(table: str, values: dict, filters: Iterable[Filter]) -> list[dict]:
    if _local_store is not None:
        return _local_store.update(table, values, list(filters))

    data = _request(
        "PATCH", table,
        params=_filter_params(filters),
        json=values,
        headers={"Prefer": "return=representation"},
    )
    return data if isinstance(data, list) else [data]


def delete(table: str, filters: Iterable[Filter]) -> None:
    filters = list(filters)
    if not filters:
        raise SupabaseError("Refusing to delete without filters.")
    if _local_store is not None:
        _local_store.delete(table, filters)
        return
    _request("DELETE", table, params=_filter_params(filters))


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _filter_params(filters: Iterable[Filter] | None) -> list[tuple[str, str]]:
    params = []
    for column, op, value in filters or []:
        if op == "in":
            value = "(" + ",".join(str(v) for v in value) + ")"
        elif op == "is" and value is None:
            value = "null"
        params.append((column, f"{op}.{value}"))
    return params


def _headers() -> dict[str, str]:
    token = _session["access_token"] or _SERVICE_KEY or _ANON_KEY
    key = _SERVICE_KEY if (_SERVICE_KEY and not _session["access_token"]) else _ANON_KEY
    return {
        "apikey":        key,
        "Authorization": f"Bearer {token}",
        "Content-Type":  "application/json",
    }


def _request(method: str, table: str, params=None, json=None, headers=None) -> Any:
    _require_configured()
    all_headers = _headers()
    all_headers.update(headers or {})

    resp = requests.request(
        method,
        f"{_URL}/rest/v1/{table}",
        params=params,
        json=json,
        headers=all_headers,
        timeout=_TIMEOUT,
    )
    if not resp.ok:
        data = _json(resp)
        code = data.get("code")
        if resp.status_code == 406 and not code:
            code = NOT_FOUND
        if code != NOT_FOUND:
            logger.warning("supabase: %s %s failed %d — %s",
                           method, table, resp.status_code, resp.text[:200])
        raise SupabaseError(data.get("message") or f"{method} {table} failed ({resp.status_code})", code)

    if resp.status_code == 204 or not resp.content:
        return None
    return resp.json()


def _json(resp: requests.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}

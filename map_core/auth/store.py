"""
Account and app-config storage.

Two backends share the AccountStore interface:
- JsonAccountStore: data/accounts.json + data/app_config.json, atomic writes
- SupabaseAccountStore: PostgREST tables `accounts` and `app_config`

Allow-list lookups return None when no value is stored and raise StoreError
when the backend cannot be reached.
"""

from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import requests

from map_core.utils.exceptions import AccountExistsError, ConfigError, StoreError
from map_core.utils.logger import get_logger

from .models import Account

logger = get_logger(__name__)

ACCOUNTS_FILENAME = "accounts.json"
CONFIG_FILENAME = "app_config.json"


def clean_pages(raw: Any) -> Optional[List[str]]:
    """Keep only non-empty string entries; None when raw is not a list."""
    if not isinstance(raw, list):
        return None
    return [p.strip() for p in raw if isinstance(p, str) and p.strip()]


def parse_config_pages(value: Any) -> Optional[List[str]]:
    """app_config values are JSON-encoded string lists."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    return clean_pages(value)


class AccountStore(Protocol):
    def get_account(self, account_id: str) -> Optional[Account]: ...

    def get_account_by_login(self, login: str) -> Optional[Account]: ...

    def list_accounts(self) -> List[Account]: ...

    def create_account(self, account: Account) -> Account: ...

    def set_account_pages(self, account_id: str, pages: List[str]) -> bool: ...

    def get_config_pages(self, key: str) -> Optional[List[str]]: ...

    def set_config_pages(self, key: str, pages: List[str]) -> None: ...


def _atomic_write(path: Path, payload: Dict) -> None:
    """Atomically write JSON to the target path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w", dir=str(path.parent), delete=False, encoding="utf-8"
    ) as tf:
        json.dump(payload, tf, indent=2, ensure_ascii=False, default=str)
        temp_path = Path(tf.name)
    try:
        shutil.move(str(temp_path), str(path))
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


class JsonAccountStore:
    """File-backed store for local and single-node deployments."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.accounts_file = self.data_dir / ACCOUNTS_FILENAME
        self.config_file = self.data_dir / CONFIG_FILENAME

    def _read(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt store file {path.name}: {e}")
        except OSError as e:
            raise StoreError(f"Cannot read {path.name}: {e}")

    def _load_accounts(self) -> List[Account]:
        items = self._read(self.accounts_file).get("accounts", [])
        out: List[Account] = []
        for item in items:
            try:
                out.append(Account(**item))
            except ValueError as e:
                logger.warning("Skipping invalid account record", error=str(e))
        return out

    def _save_accounts(self, accounts: List[Account]) -> None:
        _atomic_write(
            self.accounts_file,
            {"accounts": [a.model_dump(mode="json") for a in accounts]},
        )

    def get_account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self._load_accounts() if a.id == account_id), None)

    def get_account_by_login(self, login: str) -> Optional[Account]:
        login = login.lower()
        return next((a for a in self._load_accounts() if a.login.lower() == login), None)

    def list_accounts(self) -> List[Account]:
        """Newest first."""
        return sorted(self._load_accounts(), key=lambda a: a.created_at, reverse=True)

    def create_account(self, account: Account) -> Account:
        accounts = self._load_accounts()
        if any(a.login.lower() == account.login.lower() for a in accounts):
            raise AccountExistsError(f"Login {account.login!r} is already taken")
        accounts.append(account)
        self._save_accounts(accounts)
        return account

    def set_account_pages(self, account_id: str, pages: List[str]) -> bool:
        accounts = self._load_accounts()
        for account in accounts:
            if account.id == account_id:
                account.allowed_pages = list(pages)
                self._save_accounts(accounts)
                return True
        return False

    def get_config_pages(self, key: str) -> Optional[List[str]]:
        return parse_config_pages(self._read(self.config_file).get(key))

    def set_config_pages(self, key: str, pages: List[str]) -> None:
        data = self._read(self.config_file)
        data[key] = json.dumps(list(pages))
        _atomic_write(self.config_file, data)


class SupabaseAccountStore:
    """PostgREST client for the hosted accounts/app_config tables."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.rest_url}/{table}"
        try:
            logger.debug("Store request", method=method, table=table)
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Store unreachable", table=table, error=str(e))
            raise StoreError(f"Store request failed: {e}")

        if response.status_code == 409:
            raise AccountExistsError("Login is already taken")
        if response.status_code >= 400:
            error_code = None
            try:
                payload = response.json()
                if isinstance(payload, dict):
                    error_code = payload.get("code")
            except ValueError:
                pass
            if error_code == "23505":
                raise AccountExistsError("Login is already taken")
            logger.error(
                "Store returned an error",
                table=table,
                status_code=response.status_code,
                code=error_code,
            )
            raise StoreError(
                f"Store returned HTTP {response.status_code}", status_code=response.status_code
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"Store returned invalid JSON: {e}")

    def _select_accounts(self, params: Dict[str, str]) -> List[Account]:
        rows = self._request("GET", "accounts", params=params) or []
        return [
            Account(**{**row, "allowed_pages": clean_pages(row.get("allowed_pages")) or []})
            for row in rows
        ]

    def get_account(self, account_id: str) -> Optional[Account]:
        rows = self._select_accounts({"select": "*", "id": f"eq.{account_id}", "limit": "1"})
        return rows[0] if rows else None

    def get_account_by_login(self, login: str) -> Optional[Account]:
        rows = self._select_accounts({"select": "*", "login": f"eq.{login.lower()}", "limit": "1"})
        return rows[0] if rows else None

    def list_accounts(self) -> List[Account]:
        return self._select_accounts({"select": "*", "order": "created_at.desc"})

    def create_account(self, account: Account) -> Account:
        self._request(
            "POST",
            "accounts",
            body={
                "id": account.id,
                "login": account.login,
                "password_hash": account.password_hash,
                "allowed_pages": account.allowed_pages,
            },
            headers={"Prefer": "return=minimal"},
        )
        return account

    def set_account_pages(self, account_id: str, pages: List[str]) -> bool:
        rows = self._request(
            "PATCH",
            "accounts",
            params={"id": f"eq.{account_id}"},
            body={"allowed_pages": list(pages)},
            headers={"Prefer": "return=representation"},
        )
        return bool(rows)

    def get_config_pages(self, key: str) -> Optional[List[str]]:
        rows = self._request(
            "GET", "app_config", params={"select": "value", "key": f"eq.{key}"}
        ) or []
        if not rows:
            return None
        return parse_config_pages(rows[0].get("value"))

    def set_config_pages(self, key: str, pages: List[str]) -> None:
        self._request(
            "POST",
            "app_config",
            params={"on_conflict": "key"},
            body={"key": key, "value": json.dumps(list(pages))},
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )


def create_store(settings) -> AccountStore:
    """Build the configured store backend from StoreSettings."""
    if settings.backend == "supabase":
        if not settings.supabase_url or not settings.supabase_key:
            raise ConfigError("Supabase backend needs SUPABASE_URL and a Supabase key")
        return SupabaseAccountStore(
            settings.supabase_url, settings.supabase_key, timeout=settings.timeout_seconds
        )
    return JsonAccountStore(Path(settings.data_dir))

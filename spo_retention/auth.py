"""
OAuth 2.0 token acquisition against Microsoft Entra ID.

Two sign-in modes, chosen from a small sub-menu:
- Device code (delegated, operator signs in as a SharePoint administrator)
- App credentials (client secret, app-only)

Tokens are cached per resource (Graph, SharePoint, SharePoint admin). With
device code sign-in the refresh token is exchanged for each further resource.
"""

import time
import getpass
import logging
import requests
from datetime import datetime, timedelta
from typing import Dict, Optional

from spo_retention.console import logger as console, ask, banner, InputFn
from spo_retention.errors import ConnectionFailure
from spo_retention.settings import SECRET_ENV_VAR, secret_from_env

logger = logging.getLogger(__name__)

AUTHORITY = "https://login.microsoftonline.com"
GRAPH_RESOURCE = "https://graph.microsoft.com"
TOKEN_TIMEOUT = 30


class TokenEntry:
    def __init__(self, access_token: str, expires_in: int):
        self.access_token = access_token
        self.expiry = datetime.now() + timedelta(seconds=int(expires_in))

    @property
    def needs_refresh(self) -> bool:
        # Refresh if less than 5 minutes remaining
        return datetime.now() > self.expiry - timedelta(minutes=5)


class Authenticator:
    """Holds credentials and hands out bearer tokens per resource."""

    def __init__(self, tenant_name: str, client_id: str = None, tenant_id: str = None):
        self.tenant_name = tenant_name
        self.client_id = client_id
        self.tenant_id = tenant_id or f"{tenant_name}.onmicrosoft.com"
        self.client_secret: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self._tokens: Dict[str, TokenEntry] = {}

    @property
    def sharepoint_resource(self) -> str:
        return f"https://{self.tenant_name}.sharepoint.com"

    @property
    def admin_resource(self) -> str:
        return f"https://{self.tenant_name}-admin.sharepoint.com"

    @property
    def token_url(self) -> str:
        return f"{AUTHORITY}/{self.tenant_id}/oauth2/v2.0/token"

    @property
    def is_authenticated(self) -> bool:
        return bool(self._tokens) or self.refresh_token is not None or self.client_secret is not None

    # ========================================================================
    # Sign-in
    # ========================================================================

    def login(self, input_fn: InputFn = None) -> bool:
        """Authentication sub-menu. Returns True once signed in."""
        banner(f"Sign in to {self.tenant_name}")

        if not self.client_id:
            console.info("\n📋 An Entra ID app registration is required.")
            console.info("   API permissions: SharePoint Sites.FullControl.All, Graph Sites.Read.All")
            self.client_id = ask("Enter Application (client) ID: ", input_fn)

        choice = ask(
            "\nChoose login method:\n"
            "1. Device Code (interactive administrator sign-in)\n"
            "2. App Credentials (client secret)\n"
            "3. Back\n"
            "Enter choice: ",
            input_fn,
        )

        if choice == '1':
            return self.device_code_auth()
        if choice == '2':
            secret = secret_from_env(SECRET_ENV_VAR)
            if secret:
                console.info(f"✓ Client secret loaded from {SECRET_ENV_VAR} env var")
            else:
                console.info("\n🔐 Client secret required (never stored on disk)")
                secret = getpass.getpass("Enter Client Secret (hidden): ")
            return self.app_credentials_auth(secret)
        console.info("Returning to main menu...")
        return False

    def device_code_auth(self) -> bool:
        """Authenticate using the device code flow."""
        console.info("\n📱 Device Code Authentication")

        try:
            response = requests.post(
                f"{AUTHORITY}/{self.tenant_id}/oauth2/v2.0/devicecode",
                data={
                    'client_id': self.client_id,
                    'scope': f"{self.admin_resource}/.default offline_access",
                },
                timeout=TOKEN_TIMEOUT,
            )
            device_code_data = response.json()
        except (requests.RequestException, ValueError) as e:
            console.error(f"Authentication error: {e}")
            return False

        if 'error' in device_code_data:
            console.error(f"Error: {device_code_data.get('error_description', 'Unknown error')}")
            return False

        console.info(f"\n1. Go to: {device_code_data['verification_uri']}")
        console.info(f"2. Enter code: {device_code_data['user_code']}")
        console.info("3. Sign in with a SharePoint administrator account")
        console.info(f"\nWaiting for authentication (expires in {device_code_data['expires_in'] // 60} minutes)...")

        token_data = {
            'client_id': self.client_id,
            'grant_type': 'urn:ietf:params:oauth:grant-type:device_code',
            'device_code': device_code_data['device_code'],
        }
        interval = device_code_data.get('interval', 5)
        expires_at = time.time() + device_code_data['expires_in']

        while time.time() < expires_at:
            time.sleep(interval)
            try:
                result = requests.post(self.token_url, data=token_data, timeout=TOKEN_TIMEOUT).json()
            except (requests.RequestException, ValueError) as e:
                console.error(f"Authentication error: {e}")
                return False

            if 'access_token' in result:
                self._store(self.admin_resource, result)
                console.success("Successfully authenticated!")
                return True
            error = result.get('error')
            if error == 'authorization_pending':
                continue
            if error == 'slow_down':
                interval += 5
                continue
            console.error(f"Authentication failed: {result.get('error_description', error)}")
            return False

        console.error("Authentication timeout")
        return False

    def app_credentials_auth(self, client_secret: str) -> bool:
        """Authenticate app-only with a client secret."""
        if not client_secret:
            console.error("Client secret is required")
            return False

        self.client_secret = client_secret
        try:
            self.get_token(self.admin_resource)
        except ConnectionFailure as e:
            console.error(f"Authentication failed: {e.message}")
            self.client_secret = None
            return False

        console.success("Successfully authenticated!")
        return True

    # ========================================================================
    # Tokens
    # ========================================================================

    def get_token(self, resource: str) -> str:
        """Return a valid access token for ``resource``; raises ConnectionFailure."""
        entry = self._tokens.get(resource)
        if entry and not entry.needs_refresh:
            return entry.access_token

        if self.client_secret:
            data = {
                'client_id': self.client_id,
                'client_secret': self.client_secret,
                'scope': f"{resource}/.default",
                'grant_type': 'client_credentials',
            }
        elif self.refresh_token:
            data = {
                'client_id': self.client_id,
                'refresh_token': self.refresh_token,
                'scope': f"{resource}/.default offline_access",
                'grant_type': 'refresh_token',
            }
        else:
            raise ConnectionFailure(f"Not signed in (no token for {resource})")

        try:
            response = requests.post(self.token_url, data=data, timeout=TOKEN_TIMEOUT)
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ConnectionFailure(f"Token request for {resource} failed: {e}") from e

        if 'access_token' not in result:
            raise ConnectionFailure(
                f"Token request for {resource} rejected: "
                f"{result.get('error_description', result.get('error', 'Unknown error'))}",
                status=response.status_code,
            )

        logger.debug(f"Acquired token for {resource}")
        return self._store(resource, result)

    def headers(self, resource: str) -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {self.get_token(resource)}",
            'Accept': 'application/json;odata=nometadata',
        }

    def _store(self, resource: str, result: Dict) -> str:
        self._tokens[resource] = TokenEntry(result['access_token'], result.get('expires_in', 3600))
        if result.get('refresh_token'):
            self.refresh_token = result['refresh_token']
        return result['access_token']

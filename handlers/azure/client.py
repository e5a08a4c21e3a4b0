# ================================================================
# File     : client.py
# Purpose  : Read-only REST client for Azure Resource Manager and
#            Microsoft Graph
# Notes    : Read-only: GET + pagination + retries. The only POST is
#            Graph getByIds, which reads.
#            - Auto-refresh token on 401
#            - Proactive refresh if token expires in <5 minutes
#            - One MSAL app shared by the ARM and Graph clients
# ================================================================

import os
import time
import getpass
from typing import Dict, Any, List, Optional

import msal
import requests

from core.utils import fncPrintMessage, fncRetry

ARM_ROOT = "https://management.azure.com"
ARM_SCOPE = ["https://management.azure.com/.default"]
GRAPH_ROOT = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = ["https://graph.microsoft.com/.default"]
DEFAULT_AUTHORITY = "https://login.microsoftonline.com"


class AzureRequestError(Exception):
    """Non-success HTTP response from ARM or Graph."""

    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(f"Azure request failed with status {status}: {message}")


# ================================================================
# Function: fncBuildMsalApp
# Purpose : Create the MSAL confidential client (client credentials)
# Notes   : Prompts for anything missing; credentials stay in the
#           process environment for this session only
# ================================================================
def fncBuildMsalApp(
    tenant_id: Optional[str] = None,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    authority: str = DEFAULT_AUTHORITY,
) -> msal.ConfidentialClientApplication:
    tenant_id = tenant_id or os.getenv("AZURE_TENANT_ID")
    client_id = client_id or os.getenv("AZURE_CLIENT_ID")
    client_secret = client_secret or os.getenv("AZURE_CLIENT_SECRET")

    if not tenant_id:
        tenant_id = input("Enter Tenant ID: ").strip()
    if not client_id:
        client_id = input("Enter Application (Client) ID: ").strip()
    if not client_secret:
        fncPrintMessage(
            "No Client Secret found *Hidden* "
            "Credentials are stored in environment only for this session.",
            "warn",
        )
        client_secret = getpass.getpass("Enter Client Secret (input hidden): ").strip()

    os.environ["AZURE_TENANT_ID"] = tenant_id
    os.environ["AZURE_CLIENT_ID"] = client_id
    os.environ["AZURE_CLIENT_SECRET"] = client_secret

    return msal.ConfidentialClientApplication(
        client_id=client_id,
        client_credential=client_secret,
        authority=f"{(authority or DEFAULT_AUTHORITY).rstrip('/')}/{tenant_id}",
    )


class AzureClient:
    def __init__(self, app: msal.ConfidentialClientApplication, root: str, scope: List[str], timeout: int = 60):
        self.app = app
        self.root = root.rstrip("/")
        self.scope = scope
        self.timeout = timeout

        # token/bookkeeping
        self.token: str = ""
        self._token_expires_on: int = 0  # epoch seconds
        self._set_token(self._acquire_token())

        fncPrintMessage(f"AzureClient initialised for {self.root} (read-only).", "debug")

    # ---------- Token helpers ----------

    def _acquire_token(self) -> Dict[str, Any]:
        """Acquire a token using MSAL (silent -> client creds). Returns MSAL result dict."""
        fncPrintMessage(f"Requesting access token for {self.scope[0]}...", "debug")
        result = self.app.acquire_token_silent(self.scope, account=None)
        if not result:
            result = self.app.acquire_token_for_client(scopes=self.scope)
        if "access_token" not in result:
            reason = result.get("error_description", "Unknown error")
            fncPrintMessage(f"MSAL Authentication failed: {reason}", "error")
            raise AzureRequestError(401, f"Failed to acquire access token: {reason}")
        return result

    def _set_token(self, msal_result: Dict[str, Any]) -> None:
        """Store token and expiry from MSAL result."""
        self.token = msal_result["access_token"]
        try:
            self._token_expires_on = int(msal_result.get("expires_on") or 0)
        except (TypeError, ValueError):
            self._token_expires_on = 0
        if not self._token_expires_on:
            self._token_expires_on = int(time.time()) + int(msal_result.get("expires_in", 3600))

    def _ensure_fresh_token(self) -> None:
        """Proactively refresh token if it expires in <5 minutes."""
        now = int(time.time())
        if now >= (self._token_expires_on - 300):
            fncPrintMessage("Refreshing access token (nearing expiry)...", "debug")
            self._set_token(self._acquire_token())

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    # ---------- HTTP handling ----------

    def _resend(self, response: requests.Response) -> requests.Response:
        req = response.request
        return requests.request(method=req.method, url=req.url, headers=self._auth_headers(),
                                data=req.body, timeout=self.timeout)

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        status = response.status_code

        if status == 200:
            return response.json()

        # Rate limit
        if status == 429:
            retry_after = int(response.headers.get("Retry-After", 5))
            fncPrintMessage(f"Rate limit hit. Sleeping for {retry_after}s...", "warn")
            time.sleep(retry_after)
            return self._handle_response(self._resend(response))

        # Unauthorized (refresh and retry once)
        if status == 401:
            try:
                body = response.json()
            except ValueError:
                body = {}
            err = (body.get("error") or {}) if isinstance(body, dict) else {}
            code = err.get("code") or ""
            msg = err.get("message") or ""
            if "InvalidAuthenticationToken" in code or "ExpiredAuthenticationToken" in code or "expired" in str(msg).lower():
                fncPrintMessage("Access token expired, Attempting Refresh.", "warn")
                self._set_token(self._acquire_token())
                resp = self._resend(response)
                if resp.status_code == 200:
                    return resp.json()
            fncPrintMessage(f"Unauthorized (401): {response.text}", "error")
            raise AzureRequestError(401, response.text)

        if status >= 400:
            fncPrintMessage(f"Azure API Error [{status}] -> {response.text}", "debug")
            raise AzureRequestError(status, response.text)

        # 2xx without a JSON body
        try:
            return response.json()
        except ValueError:
            return {"status": status, "text": response.text}

    def _request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                 payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Single HTTP request with proactive token refresh and 401 auto-refresh retry."""
        self._ensure_fresh_token()
        resp = requests.request(method, url, headers=self._auth_headers(), params=params,
                                json=payload, timeout=self.timeout)
        return self._handle_response(resp)

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("https://"):
            return endpoint
        return f"{self.root}/{endpoint.strip().lstrip('/')}"

    # ---------- Public API ----------

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Perform a GET request (single page). Use get_all for list endpoints."""
        url = self._url(endpoint)
        fncPrintMessage(f"GET {url}", "debug")
        return fncRetry(lambda: self._request("GET", url, params=params),
                        exceptions=(requests.ConnectionError, requests.Timeout))

    def post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST for read-style endpoints (e.g. directoryObjects/getByIds)."""
        url = self._url(endpoint)
        fncPrintMessage(f"POST {url}", "debug")
        return fncRetry(lambda: self._request("POST", url, payload=payload),
                        exceptions=(requests.ConnectionError, requests.Timeout))

    def get_all(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Retrieve all items from a paginated endpoint.
        Follows ARM 'nextLink' and Graph '@odata.nextLink'.
        Example: client.get_all("subscriptions/<id>/providers/Microsoft.Authorization/roleAssignments",
                                params={"api-version": "2022-04-01"})
        """
        url = self._url(endpoint)
        fncPrintMessage(f"GET (all pages) {url}", "debug")

        data = fncRetry(lambda: self._request("GET", url, params=params),
                        exceptions=(requests.ConnectionError, requests.Timeout))

        if not isinstance(data, dict):
            return []
        if "value" not in data:
            return [data]

        items: List[Dict[str, Any]] = list(data.get("value") or [])
        next_link = data.get("nextLink") or data.get("@odata.nextLink")

        while next_link:
            fncPrintMessage(f"Following nextLink -> {next_link}", "debug")
            link = next_link
            page = fncRetry(lambda: self._request("GET", link),
                            exceptions=(requests.ConnectionError, requests.Timeout))
            if not isinstance(page, dict):
                break
            items.extend(page.get("value") or [])
            next_link = page.get("nextLink") or page.get("@odata.nextLink")

        return items

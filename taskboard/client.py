"""
HTTP client for the taskboard API.

Wraps a requests.Session so the refreshToken cookie set by the server is
kept between calls. How a 401 is handled depends on the access mode:

    per-account    — refresh the access token once and retry the request
    shared-secret  — forget the token and fail closed
    open           — fail closed
"""
import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from .errors import KanbanError, NetworkError, error_for_status

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3001"


class ApiClient:
    """Thin JSON client; every call returns server-canonical records."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, mode: str = "per-account",
                 timeout: float = 5.0, session: requests.Session = None):
        self.base_url = base_url.rstrip("/")
        self.mode = mode
        self.timeout = timeout
        self.session = session or requests.Session()
        self.token: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None
        self.on_unauthorized: Optional[Callable[[], None]] = None

    # ──────────────────────────────────────────
    # Transport
    # ──────────────────────────────────────────

    def _headers(self, token: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _send(self, method: str, path: str, payload: Any, token: Optional[str]) -> requests.Response:
        try:
            return self.session.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers(token),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Network error: {e}")

    @staticmethod
    def _parse(resp: requests.Response) -> Any:
        if not resp.ok:
            message = "Request failed"
            try:
                data = resp.json()
                if isinstance(data, dict) and data.get("error"):
                    message = data["error"]
            except ValueError:
                pass
            raise error_for_status(resp.status_code, message)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            raise NetworkError("Malformed response from server")

    def clear_auth(self) -> None:
        self.token = None
        self.user = None
        if self.on_unauthorized:
            self.on_unauthorized()

    def request(self, method: str, path: str, payload: Any = None) -> Any:
        """Authenticated request with the mode's 401 policy applied."""
        resp = self._send(method, path, payload, self.token)
        if resp.status_code != 401:
            return self._parse(resp)

        if self.mode == "per-account":
            try:
                self.refresh()
            except KanbanError:
                self.clear_auth()
                return self._parse(resp)
            return self._parse(self._send(method, path, payload, self.token))

        self.clear_auth()
        return self._parse(resp)

    # ──────────────────────────────────────────
    # Authentication
    # ──────────────────────────────────────────

    def _accept_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.token = data.get("accessToken")
        self.user = data.get("user")
        return data

    def register(self, email: str, password: str) -> Dict[str, Any]:
        data = self._parse(self._send("POST", "/auth/register",
                                      {"email": email, "password": password}, None))
        return self._accept_session(data)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """per-account: email/password; shared-secret: username/password."""
        if self.mode == "shared-secret":
            data = self._parse(self._send("POST", "/login",
                                          {"username": email, "password": password}, None))
            self.token = data.get("token")
            return data
        data = self._parse(self._send("POST", "/auth/login",
                                      {"email": email, "password": password}, None))
        return self._accept_session(data)

    def refresh(self) -> Dict[str, Any]:
        data = self._parse(self._send("POST", "/auth/refresh", None, None))
        return self._accept_session(data)

    def logout(self) -> None:
        try:
            if self.mode == "per-account":
                self._parse(self._send("POST", "/auth/logout", None, self.token))
            elif self.mode == "shared-secret" and self.token:
                self._parse(self._send("POST", "/logout", None, self.token))
        finally:
            self.token = None
            self.user = None

    def me(self) -> Dict[str, Any]:
        return self.request("GET", "/auth/me")["user"]

    def health(self) -> Dict[str, Any]:
        return self._parse(self._send("GET", "/health", None, None))

    # ──────────────────────────────────────────
    # Board
    # ──────────────────────────────────────────

    def list_projects(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/projects") or []

    def create_project(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/projects", payload)

    def update_project(self, project_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"/projects/{project_id}", payload)

    def delete_project(self, project_id: str) -> None:
        self.request("DELETE", f"/projects/{project_id}")

    def list_tasks(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/tasks") or []

    def create_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/tasks", payload)

    def update_task(self, task_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", f"/tasks/{task_id}", payload)

    def delete_task(self, task_id: str) -> None:
        self.request("DELETE", f"/tasks/{task_id}")

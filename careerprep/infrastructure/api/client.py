"""
REST client for the recruiting platform API.
"""
import json
import logging
from typing import Optional, Dict, Any

import requests

from ...config import HTTP_TIMEOUT, SDP_TIMEOUT, SESSION_COOKIE_NAME
from ...errors import ApiError, NetworkError

logger = logging.getLogger("api_client")


class ApiClient:
    """JSON-over-HTTP client that carries the job seeker's session."""

    def __init__(self,
                 base_url: str,
                 token: Optional[str] = None,
                 session_cookie: Optional[str] = None,
                 timeout: int = HTTP_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        if session_cookie:
            self.session.cookies.set(SESSION_COOKIE_NAME, session_cookie)

    @classmethod
    def from_config(cls, config, session: Optional[requests.Session] = None) -> "ApiClient":
        return cls(
            config.api_base_url,
            token=config.api_token,
            session_cookie=config.session_cookie,
            timeout=config.http_timeout,
            session=session,
        )

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self,
                method: str,
                path: str,
                json_body: Optional[Any] = None,
                params: Optional[Dict[str, Any]] = None,
                files: Optional[Dict[str, Any]] = None,
                data: Optional[Dict[str, Any]] = None,
                allow_unauthorized: bool = False) -> Any:
        """
        Send a request and decode the JSON response.

        Args:
            method: HTTP method
            path: Path relative to the API base URL
            json_body: JSON body, serialized with Content-Type application/json
            params: Query string parameters
            files: Multipart files, sent together with ``data`` form fields
            data: Multipart form fields
            allow_unauthorized: Return None instead of raising on 401

        Returns:
            Decoded JSON body (None for empty bodies)

        Raises:
            ApiError: On a non-2xx status
            NetworkError: If no response was received
        """
        url = self.url(path)
        logger.debug(f"{method} {url}")

        try:
            resp = self.session.request(
                method,
                url,
                json=json_body,
                params=params,
                files=files,
                data=data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if allow_unauthorized and resp.status_code == 401:
            logger.info(f"{method} {url} unauthorized, returning None")
            return None

        if resp.status_code >= 400:
            raise ApiError(resp.status_code, self._error_message(resp))

        return self._decode(resp)

    def get(self, path: str, **kwargs) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, json_body: Optional[Any] = None, **kwargs) -> Any:
        return self.request("POST", path, json_body=json_body, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request("DELETE", path, **kwargs)

    def post_sdp(self, path: str, offer_sdp: str, bearer: str) -> str:
        """POST a raw SDP offer and return the raw SDP answer."""
        url = self.url(path)
        headers = {
            "Authorization": f"Bearer {bearer}",
            "Content-Type": "application/sdp",
        }
        try:
            resp = self.session.post(url, data=offer_sdp.encode("utf-8"),
                                     headers=headers, timeout=SDP_TIMEOUT)
        except requests.RequestException as e:
            raise NetworkError(f"SDP exchange failed: {e}") from e

        if resp.status_code >= 400:
            raise ApiError(resp.status_code, self._error_message(resp))
        return resp.text

    def _error_message(self, resp) -> str:
        """Prefer the server's ``message`` field, then the raw body, then the reason."""
        text = resp.text or ""
        try:
            body = json.loads(text)
            if isinstance(body, dict) and isinstance(body.get("message"), str):
                return body["message"]
        except ValueError:
            pass
        return text or (resp.reason or "")

    def _decode(self, resp) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            logger.warning(f"Non-JSON response from {resp.url}")
            return resp.text

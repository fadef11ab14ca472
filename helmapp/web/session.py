import aiohttp
from typing import Any, Dict, Mapping, Optional, Union
from yarl import URL

from .error import AuthenticationError, NotFoundError

HEADERS = {
    "Accept": "*/*",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "User-Agent": "helmapp-operator",
}

"""Default timeout in seconds"""
TIMEOUT: float = 30


class SessionManager:
    """Thin wrapper around an `aiohttp.ClientSession`.

    The session is created lazily so that the manager can be built outside of
    a running event loop (operator startup, tests).
    """

    def __init__(
        self,
        headers: Optional[Mapping] = None,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
        auth: Optional[aiohttp.BasicAuth] = None,
    ) -> None:
        merged_headers = dict(**HEADERS)
        merged_headers.update(headers or {})
        self.headers = merged_headers
        self.timeout = timeout if timeout is not None else TIMEOUT
        self.auth = auth
        self._session = session

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers, auth=self.auth)
        return self._session

    async def _request(
        self,
        method: str,
        url: Union[str, URL],
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Mapping] = None,
        raise_errors: bool = True,
    ) -> bytes:
        """Run a wrapped session HTTP request and return the raw body.

        Args:
            method: HTTP method.
            url: The url to request.
            params: query string parameters
            headers: A dict adding to and overriding the session headers.
            raise_errors: Whether or not raise errors on non 2xx responses.
        Raises:
            AuthenticationError: On 401 and 403.
            NotFoundError: On 404.
            aiohttp.ClientError: On transport errors and, with `raise_errors`,
                any other error status.
            asyncio.TimeoutError: When the request exceeds the timeout.
        """
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with self.session.request(
            method,
            str(url),
            params=params or {},
            headers=headers or {},
            timeout=timeout,
        ) as res:
            if res.status == 401:
                raise AuthenticationError("Unauthorized")
            if res.status == 403:
                raise AuthenticationError("Forbidden")
            if res.status == 404:
                raise NotFoundError(f"Not found: {url}")
            if raise_errors:
                res.raise_for_status()
            return await res.read()

    async def get_bytes(self, url: Union[str, URL], **kwargs: Any) -> bytes:
        """Run a wrapped session HTTP GET request returning the body."""
        return await self._request("GET", url, **kwargs)

    async def get_text(self, url: Union[str, URL], encoding: str = "utf-8", **kwargs: Any) -> str:
        """Run a wrapped session HTTP GET request returning the decoded body."""
        body = await self._request("GET", url, **kwargs)
        return body.decode(encoding, errors="replace")

    def __repr__(self) -> str:
        return f"{type(self).__name__}<timeout={self.timeout}>"

    async def close(self) -> None:
        """Close the underlying session"""
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

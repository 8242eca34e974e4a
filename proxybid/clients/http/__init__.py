import asyncio
import json
import urllib.request
import urllib.error
from typing import Any, Dict, Optional


class HttpRequestError(Exception):
    """Raised when the remote end answers with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP Error {status}: {body}")
        self.status = status
        self.body = body


async def request(
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    json_data: Optional[Dict[str, Any]] = None,
    timeout: float = 10.0,
) -> Any:
    """
    Executes an HTTP request asynchronously using a thread executor.
    """
    headers = dict(headers or {})

    data = None
    if json_data is not None:
        data = json.dumps(json_data, default=str).encode("utf-8")
        headers["Content-Type"] = "application/json"
    headers.setdefault("Accept", "application/json")

    req = urllib.request.Request(url, data=data, headers=headers, method=method)

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _perform_request, req, timeout)


def _perform_request(req: urllib.request.Request, timeout: float) -> Any:
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            response_data = response.read()
            if not response_data:
                return None
            return json.loads(response_data)
    except urllib.error.HTTPError as e:
        raise HttpRequestError(e.code, e.read().decode("utf-8", errors="replace")) from e

"""Shared test helpers: build requests and carry cookies between them."""
from http.cookies import SimpleCookie

from starlette.requests import Request
from starlette.responses import Response

SECRET = "test-secret-key"
ROLES = {"user": 40, "admin": 80}


def set_cookies(response: Response) -> dict[str, str]:
    """Set-Cookie headers of a response, keyed by cookie name."""
    found = {}
    for key, value in response.raw_headers:
        if key == b"set-cookie":
            text = value.decode("latin-1")
            found[text.split("=", 1)[0]] = text
    return found


class Browser:
    """Carries cookies from each response into the next request, like a client."""

    def __init__(self):
        self.cookies: dict[str, str] = {}

    def request(self, path: str = "/", method: str = "GET") -> Request:
        headers = []
        if self.cookies:
            header = "; ".join(f"{name}={value}" for name, value in self.cookies.items())
            headers.append((b"cookie", header.encode("latin-1")))
        return Request(
            {
                "type": "http",
                "method": method,
                "scheme": "http",
                "server": ("test", 80),
                "root_path": "",
                "path": path,
                "raw_path": path.encode(),
                "query_string": b"",
                "headers": headers,
            }
        )

    def receive(self, response: Response) -> None:
        for text in set_cookies(response).values():
            cookie = SimpleCookie()
            cookie.load(text)
            for name, morsel in cookie.items():
                if morsel["max-age"] == "0" or not morsel.value:
                    self.cookies.pop(name, None)
                else:
                    self.cookies[name] = morsel.value

"""
Academy API — Security response headers

Applied to every response, errors included. Third-party hosts allowed by the
content security policy come from settings (IdP, CAPTCHA, web fonts, forms,
flag images).
"""
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from academy.core.config import Settings, get_settings


def build_csp(settings: Settings) -> str:
    idp = settings.CSP_IDP_ORIGIN
    directives: list[tuple[str, list[str]]] = [
        ("default-src", ["'self'"]),
        ("base-uri", ["'self'"]),
        ("object-src", ["'none'"]),
        ("frame-ancestors", ["'self'"]),
        ("form-action", ["'self'", *settings.form_origins, idp]),
        ("script-src", ["'self'", idp, settings.CSP_CAPTCHA_ORIGIN]),
        ("script-src-attr", ["'none'"]),
        ("style-src", ["'self'", "'unsafe-inline'", settings.CSP_FONT_CSS_ORIGIN]),
        ("font-src", ["'self'", settings.CSP_FONT_ASSET_ORIGIN]),
        ("img-src", ["'self'", "data:", "blob:", idp, settings.CSP_FLAG_CDN_ORIGIN]),
        ("connect-src", ["'self'", idp, settings.CSP_IDP_API_ORIGIN]),
        ("frame-src", ["'self'", settings.CSP_CAPTCHA_ORIGIN, settings.CSP_FORMS_FRAME_ORIGIN, idp]),
        ("upgrade-insecure-requests", []),
    ]
    parts = []
    for name, sources in directives:
        values = [s for s in dict.fromkeys(sources) if s]
        parts.append(" ".join([name, *values]))
    return "; ".join(parts)


def build_security_headers(settings: Settings) -> dict[str, str]:
    # No Cross-Origin-Embedder-Policy: it breaks the CAPTCHA and IdP iframes.
    return {
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "no-referrer",
        "Cross-Origin-Resource-Policy": "same-site",
        "Cross-Origin-Opener-Policy": "same-origin",
        "Permissions-Policy": "camera=(), geolocation=(), microphone=(), interest-cohort=()",
        "X-Permitted-Cross-Domain-Policies": "none",
        "X-Content-Type-Options": "nosniff",
        "X-DNS-Prefetch-Control": "off",
        "Origin-Agent-Cluster": "?1",
        "X-XSS-Protection": "0",
        "Content-Security-Policy": build_csp(settings),
    }


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, settings: Settings | None = None):
        super().__init__(app)
        self.headers = build_security_headers(settings or get_settings())

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers[name] = value
        if "x-powered-by" in response.headers:
            del response.headers["x-powered-by"]
        return response

"""
=============================================================================
HANDLERS MODULE
=============================================================================

The request handler turns one parsed request into one response:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    HTTPRequest           RequestHandler              HTTPResponse    │
    │   ┌───────────┐        ┌────────────────┐          ┌─────────────┐  │
    │   │ GET       │        │ validate path  │          │ 200 OK      │  │
    │   │ /docs/api │ ─────▶ │ FileResolver   │ ───────▶ │ headers     │  │
    │   │ headers   │        │ pick responder │          │ file stream │  │
    │   └───────────┘        └────────────────┘          └─────────────┘  │
    │                                                                      │
    │   handler.data() then describes the outcome for the request log.    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request_handler import (
    RequestHandler,
    RequestMeta,
    RequestURL,
    Timing,
    decode_uri_component,
    file_headers,
    header_case,
    is_valid_url_path,
    redirect_slash,
    url_from_target,
)

__all__ = [
    "RequestHandler",
    "RequestMeta",
    "RequestURL",
    "Timing",
    "decode_uri_component",
    "file_headers",
    "header_case",
    "is_valid_url_path",
    "redirect_slash",
    "url_from_target",
]

"""CSRF header shared by the API dependencies and the HTTP client."""

CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"

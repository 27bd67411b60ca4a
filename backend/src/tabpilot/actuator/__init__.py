from .client import ActuatorClient
from .executor import execute
from .page import HtmlPage, is_restricted_url, normalize_url

__all__ = ["ActuatorClient", "HtmlPage", "execute", "is_restricted_url", "normalize_url"]

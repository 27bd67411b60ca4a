from .dom import HtmlDocument
from .ranking import MAX_CANDIDATES, element_label, resolve, score_element
from .selectors import is_unique, synthesize

__all__ = [
    "MAX_CANDIDATES",
    "HtmlDocument",
    "element_label",
    "is_unique",
    "resolve",
    "score_element",
    "synthesize",
]

"""Display-name cleanup: strip every tag, keep the text."""

from bs4 import BeautifulSoup

# Tags whose text content is dropped along with the tag
NON_TEXT_TAGS = ["script", "style", "textarea", "option", "noscript"]


def strip_markup(text: str) -> str:
    soup = BeautifulSoup(text, "html.parser")
    for tag in soup(NON_TEXT_TAGS):
        tag.decompose()
    return soup.get_text().strip()

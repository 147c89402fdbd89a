from typing import Optional, Union

from bs4 import BeautifulSoup

PLACEHOLDER_TITLE = "Fail to get HTML title"


def extract_html_title(content: Union[bytes, str]) -> Optional[str]:
    """
    Extract the text of the first ``<title>`` element.

    Pure function with no I/O. Returns None when the page has no title or
    the title is blank.
    """
    soup = BeautifulSoup(content, "html.parser")
    title_tag = soup.find("title")
    if title_tag is None:
        return None
    title = title_tag.get_text().strip()
    return title or None

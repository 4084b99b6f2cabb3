"""Scraper for purchase order documents on Mercado Público.

Follows the site's 4-stage navigation over plain HTTP:
1. Search for the purchase order by code and find its detail link
2. Open the detail page
3. Download the PDF report (optional, not every order has one)
4. Open the attachments list and download every attachment

Attachment buttons are ASP.NET image buttons, so each download is a form
post carrying the page's hidden fields plus the button's click coordinates.
"""

import re
import time
from typing import Callable, Dict, List, Optional
from urllib.parse import quote, urljoin

import requests
from bs4 import BeautifulSoup

from utils.file_storage import (
    get_code_directory,
    get_fallback_filename,
    list_code_documents,
    sanitize_filename,
)

from scrapers.retry import random_sleep


SEARCH_URL = 'https://buscador.mercadopublico.cl/ordenes-de-compra'
PO_MODULE_URL = 'https://www.mercadopublico.cl/PurchaseOrder/Modules/PO/'

DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) '
                  'AppleWebKit/537.36 (KHTML, like Gecko) '
                  'Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'es-CL,es;q=0.9,en;q=0.8',
}

ONCLICK_URL_PATTERN = re.compile(r"'([^']+)'")
CONTENT_DISPOSITION_PATTERN = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


class FetchError(RuntimeError):
    """A navigation stage failed; the whole attempt is discarded."""


def find_order_link(html_content: str, code: str, base_url: str = SEARCH_URL) -> Optional[str]:
    """
    Find the detail page link for a code on the search results page.

    Args:
        html_content: Search results HTML
        code: Order code
        base_url: Base URL for resolving relative links

    Returns:
        Absolute detail URL, or None if no link mentions the whole code
    """
    # 100-1-SE25 must not match 2100-1-SE25 or 100-1-SE251
    pattern = re.compile(r'(?<![\w-])' + re.escape(code) + r'(?![\w-])')
    soup = BeautifulSoup(html_content, 'html.parser')
    for link in soup.find_all('a', href=True):
        if pattern.search(link.get_text(' ', strip=True)):
            return urljoin(base_url, link['href'])
    return None


def extract_onclick_url(soup: BeautifulSoup, button_id: str) -> Optional[str]:
    """Return the quoted URL inside an input button's onclick handler."""
    button = soup.select_one(f'input#{button_id}, input[name="{button_id}"]')
    if button is None:
        return None
    onclick = button.get('onclick') or ''
    match = ONCLICK_URL_PATTERN.search(onclick)
    return match.group(1) if match else None


def extract_form_fields(soup: BeautifulSoup) -> Dict[str, str]:
    """Hidden form fields (__VIEWSTATE and friends) needed for a postback."""
    fields = {}
    for field in soup.select('input[type="hidden"]'):
        name = field.get('name')
        if name:
            fields[name] = field.get('value', '')
    return fields


def find_attachment_buttons(soup: BeautifulSoup) -> List[str]:
    """Names of the 'show attachment' image buttons, in page order."""
    names = []
    for button in soup.select('input[id*="imgShow"]'):
        name = button.get('name') or button.get('id')
        if name:
            names.append(name)
    return names


def filename_from_response(response) -> Optional[str]:
    disposition = response.headers.get('Content-Disposition', '')
    match = CONTENT_DISPOSITION_PATTERN.search(disposition)
    if not match:
        return None
    name = sanitize_filename(match.group(1).strip())
    return name or None


class MercadoPublicoScraper:
    """Fetch collaborator: downloads every document of one purchase order."""

    def __init__(
        self,
        downloads_dir: str = 'downloads',
        timeout: float = 60.0,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            downloads_dir: Base directory; files go to downloads_dir/<code>/
            timeout: Per-request timeout in seconds
            min_delay: Minimum random delay between requests
            max_delay: Maximum random delay between requests
            session: requests.Session to reuse (created if None)
            sleep: Sleep function (injectable for tests)
        """
        self.downloads_dir = downloads_dir
        self.timeout = timeout
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)

    def fetch_documents(self, code: str) -> List[str]:
        """
        Run all 4 stages for a code.

        Returns:
            Paths of the downloaded files (empty if the order has none)

        Raises:
            FetchError: If a stage fails
        """
        # Stage 1: search
        detail_url = self.find_detail_url(code)

        # Stage 2: detail page
        detail_page = self._request('GET', detail_url, stage='open detail page')
        detail_soup = BeautifulSoup(detail_page.text, 'html.parser')

        # Stage 3: PDF report (optional)
        self.download_report(detail_soup, code)

        # Stage 4: attachments
        attachments_url = extract_onclick_url(detail_soup, 'imgAttachments')
        if attachments_url:
            popup_url = urljoin(PO_MODULE_URL, attachments_url)
            popup = self._request('GET', popup_url, stage='open attachments list')
            self.download_attachments(popup.text, popup_url, code)

        return list_code_documents(self.downloads_dir, code)

    def find_detail_url(self, code: str) -> str:
        search_url = f"{SEARCH_URL}?keywords={quote(code)}"
        print(f"  Searching purchase order: {code}")
        response = self._request('GET', search_url, stage='search')

        detail_url = find_order_link(response.text, code, search_url)
        if not detail_url:
            raise FetchError(f"No purchase order found for code {code}")
        return detail_url

    def download_report(self, detail_soup: BeautifulSoup, code: str) -> Optional[str]:
        """Download the order's PDF report if the detail page offers one."""
        relative_url = extract_onclick_url(detail_soup, 'imgPDF')
        if not relative_url:
            return None

        try:
            response = self._request('GET', urljoin(PO_MODULE_URL, relative_url), stage='download report')
        except FetchError as e:
            print(f"  ⚠ Report not downloaded for {code}: {e}")
            return None

        return self._save(response, code, f"{code}_report.pdf")

    def download_attachments(self, popup_html: str, popup_url: str, code: str) -> List[str]:
        """Download each attachment listed on the attachments page."""
        soup = BeautifulSoup(popup_html, 'html.parser')
        buttons = find_attachment_buttons(soup)
        if not buttons:
            return []

        form = soup.find('form')
        action = urljoin(popup_url, form.get('action', '')) if form else popup_url
        hidden_fields = extract_form_fields(soup)

        saved = []
        for index, name in enumerate(buttons, start=1):
            data = dict(hidden_fields)
            data[f'{name}.x'] = '10'
            data[f'{name}.y'] = '10'
            try:
                response = self._request('POST', action, stage=f'download attachment {index}', data=data)
                if 'text/html' in response.headers.get('Content-Type', ''):
                    raise FetchError('server returned a page instead of a file')
                saved.append(self._save(response, code, get_fallback_filename(code, index)))
            except FetchError as e:
                print(f"  ⚠ Failed to download attachment {index} for {code}: {e}")

        return saved

    def _request(self, method: str, url: str, stage: str, **kwargs):
        random_sleep(self.min_delay, self.max_delay, sleep=self.sleep)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"{stage} failed: {e}")
        return response

    def _save(self, response, code: str, fallback_name: str) -> str:
        code_dir = get_code_directory(self.downloads_dir, code)
        filename = filename_from_response(response) or fallback_name
        filepath = code_dir / filename

        with open(filepath, 'wb') as f:
            for chunk in response.iter_content(chunk_size=65536):
                if chunk:
                    f.write(chunk)

        print(f"  📥 Saved: {filename}")
        return str(filepath)

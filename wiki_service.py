import logging
import re

import requests
from bs4 import BeautifulSoup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter


DEFAULT_DOMAIN = 'meta.wikimedia.org'

USER_AGENT = 'WikiProfileBuilder/1.0 (https://github.com/wiki-profile-builder; contact@example.com)'

HEADERS = {
    'User-Agent': USER_AGENT,
    'Api-User-Agent': USER_AGENT,
}

WIKI_DOMAINS = [
    ('meta.wikimedia.org', 'Meta-Wiki'),
    ('en.wikipedia.org', 'English Wikipedia'),
    ('commons.wikimedia.org', 'Wikimedia Commons'),
    ('www.wikidata.org', 'Wikidata'),
    ('en.wiktionary.org', 'English Wiktionary'),
]

WIKI_FAMILIES = (
    'wikipedia.org', 'wikimedia.org', 'wikidata.org', 'wiktionary.org',
    'wikibooks.org', 'wikinews.org', 'wikiquote.org', 'wikisource.org',
    'wikiversity.org', 'wikivoyage.org', 'mediawiki.org',
)

TIMEOUT = 10

logger = logging.getLogger('wikiprofile.wiki')


class UpstreamError(Exception):
    """A MediaWiki call failed; status is what the caller should report."""

    def __init__(self, message, status=502):
        super().__init__(message)
        self.status = status


def is_valid_domain(domain):
    if not domain or len(domain) > 100:
        return False
    if not re.match(r'^[a-z0-9-]+(\.[a-z0-9-]+)+$', domain):
        return False
    return any(domain == f or domain.endswith('.' + f) for f in WIKI_FAMILIES)


def is_valid_username(username):
    if not username or len(username) > 255:
        return False
    return not re.search(r'[#<>\[\]|{}]', username)


def get_api_url(domain=DEFAULT_DOMAIN):
    return f'https://{domain}/w/api.php'


def fetch_profile(username, domain=DEFAULT_DOMAIN):
    """Return {'wikitext': ...} for User:<username>, or {'missing': True}."""
    try:
        resp = requests.get(
            get_api_url(domain),
            params={
                'action': 'query',
                'titles': f'User:{username}',
                'prop': 'revisions',
                'rvprop': 'content',
                'rvslots': 'main',
                'format': 'json',
            },
            headers=HEADERS,
            timeout=TIMEOUT
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        raise UpstreamError(str(e)) from e
    except ValueError as e:
        raise UpstreamError('Invalid API response') from e

    pages = (data.get('query') or {}).get('pages')
    if not pages:
        raise UpstreamError('Invalid API response')

    page = next(iter(pages.values()))
    if 'missing' in page:
        return {'missing': True}

    revisions = page.get('revisions') or [{}]
    revision = revisions[0]
    main_slot = (revision.get('slots') or {}).get('main') or {}
    wikitext = main_slot.get('*') or revision.get('*') or ''
    return {'wikitext': wikitext}


def fetch_module_styles(modules, domain=DEFAULT_DOMAIN):
    """CSS for ResourceLoader modules used by templates (userboxes, infoboxes)."""
    if not modules:
        return ''

    try:
        resp = requests.get(
            f'https://{domain}/w/load.php',
            params={'modules': '|'.join(modules), 'only': 'styles'},
            headers=HEADERS,
            timeout=TIMEOUT
        )
    except requests.RequestException as e:
        logger.warning(f'Error fetching module styles: {e}')
        return ''

    if not resp.ok:
        logger.warning(f'Failed to fetch module styles: {resp.status_code}')
        return ''
    return resp.text


def _substitute_entities(value):
    # keep non-breaking spaces as &nbsp; so the converter turns them into spaces
    return EntitySubstitution.substitute_xml(value).replace('\xa0', '&nbsp;')


PREVIEW_FORMATTER = HTMLFormatter(entity_substitution=_substitute_entities)


def clean_rendered_html(html):
    soup = BeautifulSoup(html, 'lxml')
    for tag in soup.select('script, .mw-editsection'):
        tag.decompose()
    body = soup.body
    if body is None:
        return ''
    return body.decode_contents(formatter=PREVIEW_FORMATTER)


def parse_wikitext(text, domain=DEFAULT_DOMAIN):
    """Render wikitext through action=parse. Returns (html, module names)."""
    try:
        resp = requests.post(
            get_api_url(domain),
            data={
                'action': 'parse',
                'text': text,
                'prop': 'text|modulestyles',
                'disablelimitreport': '1',
                'disableeditsection': '1',
                'format': 'json',
                'contentmodel': 'wikitext',
            },
            headers=HEADERS,
            timeout=TIMEOUT
        )
    except requests.RequestException as e:
        raise UpstreamError(str(e)) from e

    if not resp.ok:
        raise UpstreamError(f'API returned {resp.status_code}', resp.status_code)

    try:
        data = resp.json()
    except ValueError as e:
        raise UpstreamError('Invalid API response') from e

    if 'error' in data:
        raise UpstreamError(data['error'].get('info', 'MediaWiki API error'))

    parsed = data.get('parse') or {}
    html = (parsed.get('text') or {}).get('*')
    if not html:
        raise UpstreamError('Failed to parse wikitext', 500)

    modules = parsed.get('modulestyles') or []
    html = clean_rendered_html(html)

    css = fetch_module_styles(modules, domain)
    if css:
        html = f'<style data-wiki-modules>{css}</style>{html}'

    return html, modules

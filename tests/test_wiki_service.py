"""Tests for the MediaWiki API calls."""

from unittest.mock import Mock, patch

import pytest
import requests

import wiki_service
from wiki_service import UpstreamError, fetch_profile, parse_wikitext


def make_response(json_data=None, status=200, text=''):
    resp = Mock()
    resp.status_code = status
    resp.ok = status < 400
    resp.text = text
    resp.json.return_value = json_data
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f'{status} Error')
    else:
        resp.raise_for_status = Mock()
    return resp


class TestValidation:
    """Domain and username checks."""

    @pytest.mark.parametrize('domain', [
        'meta.wikimedia.org',
        'en.wikipedia.org',
        'www.wikidata.org',
        'de.wikivoyage.org',
        'www.mediawiki.org',
    ])
    def test_valid_domains(self, domain):
        assert wiki_service.is_valid_domain(domain)

    @pytest.mark.parametrize('domain', [
        '',
        'example.com',
        'wikipedia.org.evil.com',
        'evilwikipedia.org',
        'en.wikipedia.org/path',
        'localhost',
        'EN.WIKIPEDIA.ORG',
    ])
    def test_invalid_domains(self, domain):
        assert not wiki_service.is_valid_domain(domain)

    def test_usernames(self):
        assert wiki_service.is_valid_username('Jimbo Wales')
        assert not wiki_service.is_valid_username('')
        assert not wiki_service.is_valid_username('a|b')
        assert not wiki_service.is_valid_username('x' * 256)


class TestFetchProfile:
    """Tests for fetch_profile."""

    @patch('wiki_service.requests.get')
    def test_returns_wikitext(self, mock_get, sample_query_response):
        mock_get.return_value = make_response(sample_query_response)

        result = fetch_profile('Example', 'en.wikipedia.org')

        assert result == {'wikitext': '== About me ==\nHello!'}
        args, kwargs = mock_get.call_args
        assert args[0] == 'https://en.wikipedia.org/w/api.php'
        assert kwargs['params']['titles'] == 'User:Example'
        assert kwargs['params']['rvslots'] == 'main'
        assert 'Api-User-Agent' in kwargs['headers']

    @patch('wiki_service.requests.get')
    def test_missing_page(self, mock_get):
        mock_get.return_value = make_response({
            'query': {'pages': {'-1': {'ns': 2, 'title': 'User:Nobody', 'missing': ''}}}
        })

        assert fetch_profile('Nobody') == {'missing': True}

    @patch('wiki_service.requests.get')
    def test_legacy_revision_content(self, mock_get):
        """Falls back to revisions[0]['*'] without slots."""
        mock_get.return_value = make_response({
            'query': {'pages': {'1': {'revisions': [{'*': 'old style'}]}}}
        })

        assert fetch_profile('Old') == {'wikitext': 'old style'}

    @patch('wiki_service.requests.get')
    def test_invalid_response(self, mock_get):
        mock_get.return_value = make_response({'batchcomplete': ''})

        with pytest.raises(UpstreamError, match='Invalid API response'):
            fetch_profile('Example')

    @patch('wiki_service.requests.get')
    def test_network_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('connection refused')

        with pytest.raises(UpstreamError, match='connection refused') as exc_info:
            fetch_profile('Example')
        assert exc_info.value.status == 502


class TestParseWikitext:
    """Tests for parse_wikitext."""

    @patch('wiki_service.requests.get')
    @patch('wiki_service.requests.post')
    def test_returns_html(self, mock_post, mock_get, sample_parse_response):
        mock_post.return_value = make_response(sample_parse_response)

        html, modules = parse_wikitext('== About me ==\nHello!')

        assert '<h2>About me</h2>' in html
        assert 'mw-parser-output' in html
        assert modules == []
        mock_get.assert_not_called()
        data = mock_post.call_args[1]['data']
        assert data['action'] == 'parse'
        assert data['prop'] == 'text|modulestyles'
        assert data['contentmodel'] == 'wikitext'
        assert mock_post.call_args[0][0] == 'https://meta.wikimedia.org/w/api.php'

    @patch('wiki_service.requests.post')
    def test_strips_scripts_and_edit_links(self, mock_post):
        mock_post.return_value = make_response({'parse': {'text': {'*': (
            '<div class="mw-parser-output"><h2>A<span class="mw-editsection">[edit]</span></h2>'
            '<script>alert(1)</script><p>b</p></div>'
        )}}})

        html, _ = parse_wikitext('x')

        assert 'script' not in html
        assert 'mw-editsection' not in html
        assert '<p>b</p>' in html

    @patch('wiki_service.requests.get')
    @patch('wiki_service.requests.post')
    def test_prepends_module_styles(self, mock_post, mock_get):
        mock_post.return_value = make_response({'parse': {
            'text': {'*': '<div class="mw-parser-output"><p>x</p></div>'},
            'modulestyles': ['ext.userbox', 'ext.babel'],
        }})
        mock_get.return_value = make_response(text='.userbox{color:red}')

        html, modules = parse_wikitext('x', 'en.wikipedia.org')

        assert html.startswith('<style data-wiki-modules>.userbox{color:red}</style>')
        assert modules == ['ext.userbox', 'ext.babel']
        args, kwargs = mock_get.call_args
        assert args[0] == 'https://en.wikipedia.org/w/load.php'
        assert kwargs['params'] == {'modules': 'ext.userbox|ext.babel', 'only': 'styles'}

    @patch('wiki_service.requests.get')
    @patch('wiki_service.requests.post')
    def test_module_styles_failure_is_ignored(self, mock_post, mock_get):
        mock_post.return_value = make_response({'parse': {
            'text': {'*': '<p>x</p>'},
            'modulestyles': ['ext.userbox'],
        }})
        mock_get.return_value = make_response(status=503)

        html, _ = parse_wikitext('x')

        assert html == '<p>x</p>'

    @patch('wiki_service.requests.post')
    def test_http_error_keeps_status(self, mock_post):
        mock_post.return_value = make_response(status=503)

        with pytest.raises(UpstreamError, match='API returned 503') as exc_info:
            parse_wikitext('x')
        assert exc_info.value.status == 503

    @patch('wiki_service.requests.post')
    def test_api_error_payload(self, mock_post):
        mock_post.return_value = make_response({'error': {'code': 'badtoken', 'info': 'Invalid token'}})

        with pytest.raises(UpstreamError, match='Invalid token'):
            parse_wikitext('x')

    @patch('wiki_service.requests.post')
    def test_missing_text(self, mock_post):
        mock_post.return_value = make_response({'parse': {}})

        with pytest.raises(UpstreamError, match='Failed to parse wikitext') as exc_info:
            parse_wikitext('x')
        assert exc_info.value.status == 500


class TestCleanRenderedHtml:
    """Tests for clean_rendered_html."""

    def test_keeps_nbsp_entity(self):
        html = wiki_service.clean_rendered_html('<p>a&nbsp;b été &amp; c</p>')

        assert html == '<p>a&nbsp;b été &amp; c</p>'
        assert '\xa0' not in html

    def test_round_trip_through_converter(self):
        from wikitext_converter import convert

        html = wiki_service.clean_rendered_html('<div class="mw-parser-output"><p>10&nbsp;km</p></div>')

        assert convert(html) == '10 km'

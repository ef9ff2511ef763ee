"""Pytest configuration and shared fixtures."""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to path for all tests
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# wikiprofile reads these at import time
_RUNTIME_DIR = tempfile.mkdtemp(prefix='wikiprofile-tests-')
os.environ['LOG_DIR'] = os.path.join(_RUNTIME_DIR, 'logs')
os.environ['STATE_FILE'] = os.path.join(_RUNTIME_DIR, 'state.json')
os.environ['RATELIMIT_ENABLED'] = 'false'
os.environ.pop('GEMINI_API_KEY', None)


@pytest.fixture
def state_file(tmp_path):
    """Path for a throwaway state file."""
    return tmp_path / "data" / "state.json"


@pytest.fixture
def client(monkeypatch, tmp_path):
    """Flask test client with a fresh, empty profile state."""
    import wikiprofile
    from profile_state import ProfileState

    monkeypatch.setattr(wikiprofile, "state", ProfileState(str(tmp_path / "state.json")).load())
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    wikiprofile.app.config["TESTING"] = True
    with wikiprofile.app.test_client() as test_client:
        yield test_client


@pytest.fixture
def sample_query_response():
    """MediaWiki action=query response for an existing user page."""
    return {
        "batchcomplete": "",
        "query": {
            "pages": {
                "12345": {
                    "pageid": 12345,
                    "ns": 2,
                    "title": "User:Example",
                    "revisions": [
                        {
                            "slots": {
                                "main": {
                                    "contentmodel": "wikitext",
                                    "contentformat": "text/x-wiki",
                                    "*": "== About me ==\nHello!",
                                }
                            }
                        }
                    ],
                }
            }
        },
    }


@pytest.fixture
def sample_parse_response():
    """MediaWiki action=parse response."""
    return {
        "parse": {
            "title": "API",
            "pageid": 0,
            "text": {
                "*": '<div class="mw-parser-output"><h2>About me</h2><p>Hello!\n</p></div>'
            },
            "modulestyles": [],
        }
    }

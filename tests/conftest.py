import json
from pathlib import Path

import pytest

DATA_DIR = Path(__file__).parent / "data"

PLAYER_VERSION = "abc123de"
PLAYER_PATH = f"/s/player/{PLAYER_VERSION}/player_ias.vflset/en_US/base.js"
PLAYER_URL = f"https://www.youtube.com{PLAYER_PATH}"

# jsUrl is JSON-escaped on the real embed page
_ESCAPED_PATH = PLAYER_PATH.replace("/", "\\/")
EMBED_PAGE = (
    '<html><head><script>ytcfg.set({"jsUrl":"' + _ESCAPED_PATH + '","INNERTUBE_API_KEY":"x"});'
    "</script></head></html>"
)


@pytest.fixture
def player_js() -> str:
    return (DATA_DIR / "player_base.js").read_text()


@pytest.fixture
def player_response() -> dict:
    return json.loads((DATA_DIR / "player_response.json").read_text())


@pytest.fixture
def search_response() -> dict:
    return json.loads((DATA_DIR / "search_response.json").read_text())

import httpx
import pytest

from concierge.config.repositories import build_repository_settings
from concierge.context import ConciergeContext

from helpers import BOT_NAME, REPO, Recorder


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def repository_settings():
    return build_repository_settings(REPO, {
        "gitHubToken": "token1",
        "maxDaysSinceUpdate": 30,
    })


@pytest.fixture
def make_context(recorder, repository_settings):
    def factory(repositories=None):
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return ConciergeContext(
            secret="s3cret",
            repositories=repositories or {REPO: repository_settings},
            http=client,
            bot_name=BOT_NAME,
        )

    return factory

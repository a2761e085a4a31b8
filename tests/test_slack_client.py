import pytest
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_slack_response import AsyncSlackResponse

from milestone.integrations import SlackClient, SlackConfig, SlackError
from milestone.integrations.base import AuthenticationError
from milestone.services.notification_service import build_transport


def slack_response(data, status_code=200):
    return AsyncSlackResponse(
        client=None,
        http_verb="POST",
        api_url="https://slack.com/api/chat.postMessage",
        req_args={},
        data=data,
        headers={},
        status_code=status_code
    )


class StubWebClient:
    def __init__(self, error=None):
        self.error = error
        self.posted = []

    async def chat_postMessage(self, channel, text, blocks=None):
        if self.error:
            raise SlackApiError(self.error, slack_response({"ok": False, "error": self.error}, 404))
        self.posted.append((channel, text))
        return {"ok": True, "ts": "1712.0001"}


@pytest.fixture
def slack():
    return SlackClient(SlackConfig(bot_token="xoxb-test"))


async def test_post_message_records_success(slack):
    slack._client = StubWebClient()

    assert await slack.post_message("#managers", "hello") == "1712.0001"
    assert slack.metrics.sent == 1
    assert slack.metrics.success_rate == 100.0


async def test_post_message_failure_raises_slack_error(slack):
    slack._client = StubWebClient(error="channel_not_found")

    with pytest.raises(SlackError) as exc:
        await slack.post_message("#nowhere", "hello")
    assert "channel_not_found" in str(exc.value)
    assert slack.metrics.last_error == "channel_not_found"


async def test_connect_without_token_fails():
    with pytest.raises(AuthenticationError):
        await SlackClient(SlackConfig()).connect()


async def test_disconnect_resets_client(slack):
    slack._client = StubWebClient()
    await slack.disconnect()
    assert not slack.is_connected
    assert slack._client is None


def test_no_transport_without_bot_token():
    # the test settings carry no Slack token
    assert build_transport() is None

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import time

import httpx
import pytest

from fakes import make_settings
from twitchfax.clients.helix import HelixAPIError, TwitchAPIClient
from twitchfax.clients.twitch_auth import OAuthTokenNotFoundError
from twitchfax.models.token import Token


class FakeTokenService:
    def __init__(self, token: Token) -> None:
        self.token = token
        self.refresh_calls = 0

    def get_latest_token(self) -> tuple[Token, bool]:
        return self.token, self.token.is_valid()

    async def refresh_token(self, token: Token) -> Token:
        self.refresh_calls += 1
        token.access_token = f"refreshed-{self.refresh_calls}"
        token.expires_at = int(time.time()) + 3600
        return token


class RecordingHelix:
    def __init__(self, responses: list[httpx.Response]) -> None:
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def _client(tmp_path, tokens: FakeTokenService, helix: RecordingHelix) -> TwitchAPIClient:
    settings = make_settings(tmp_path, CLIENT_ID="client-id", TWITCH_USER_ID="1234")
    return TwitchAPIClient(tokens, settings, transport=httpx.MockTransport(helix))


def _valid_token() -> Token:
    return Token("access", "refresh", "", int(time.time()) + 3600)


@pytest.mark.anyio
async def test_request_sends_client_id_and_bearer(tmp_path) -> None:
    tokens = FakeTokenService(_valid_token())
    helix = RecordingHelix([httpx.Response(200, json={"data": [{"id": "1", "login": "me"}]})])

    user = await _client(tmp_path, tokens, helix).get_user()

    assert user["login"] == "me"
    request = helix.requests[0]
    assert request.url.path == "/helix/users"
    assert request.headers["Client-Id"] == "client-id"
    assert request.headers["Authorization"] == "Bearer access"
    assert tokens.refresh_calls == 0


@pytest.mark.anyio
async def test_unauthorized_is_retried_once_after_refresh(tmp_path) -> None:
    tokens = FakeTokenService(_valid_token())
    helix = RecordingHelix(
        [httpx.Response(401), httpx.Response(200, json={"data": [{"id": "1"}]})]
    )

    response = await _client(tmp_path, tokens, helix).request("GET", "users")

    assert response.status_code == 200
    assert tokens.refresh_calls == 1
    assert [r.headers["Authorization"] for r in helix.requests] == [
        "Bearer access",
        "Bearer refreshed-1",
    ]


@pytest.mark.anyio
async def test_repeated_unauthorized_is_not_retried_again(tmp_path) -> None:
    tokens = FakeTokenService(_valid_token())
    helix = RecordingHelix([httpx.Response(401)])

    response = await _client(tmp_path, tokens, helix).request("GET", "users")

    assert response.status_code == 401
    assert tokens.refresh_calls == 1
    assert len(helix.requests) == 2


@pytest.mark.anyio
async def test_expired_token_is_refreshed_before_request(tmp_path) -> None:
    tokens = FakeTokenService(Token("stale", "refresh", "", int(time.time()) - 5))
    helix = RecordingHelix([httpx.Response(200, json={"data": []})])

    await _client(tmp_path, tokens, helix).request("GET", "streams")

    assert tokens.refresh_calls == 1
    assert helix.requests[0].headers["Authorization"] == "Bearer refreshed-1"


@pytest.mark.anyio
async def test_missing_token_raises_not_found(tmp_path) -> None:
    tokens = FakeTokenService(Token())
    helix = RecordingHelix([httpx.Response(200)])

    with pytest.raises(OAuthTokenNotFoundError):
        await _client(tmp_path, tokens, helix).request("GET", "users")
    assert helix.requests == []


@pytest.mark.anyio
async def test_stream_info_and_leaderboard_parsing(tmp_path) -> None:
    tokens = FakeTokenService(_valid_token())

    def helix(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/streams"):
            assert request.url.params["user_id"] == "1234"
            return httpx.Response(
                200,
                json={"data": [{"type": "live", "viewer_count": 42, "started_at": "2024-01-01T00:00:00Z"}]},
            )
        return httpx.Response(
            200,
            json={"data": [{"rank": 1, "user_id": "9", "user_name": "bob", "score": 500}]},
        )

    settings = make_settings(tmp_path, CLIENT_ID="client-id", TWITCH_USER_ID="1234")
    client = TwitchAPIClient(tokens, settings, transport=httpx.MockTransport(helix))

    stream = await client.get_stream_info()
    leaders = await client.get_bits_leaderboard()

    assert stream == {"is_live": True, "viewer_count": 42, "started_at": "2024-01-01T00:00:00Z"}
    assert leaders == [{"rank": 1, "user_id": "9", "user_name": "bob", "score": 500}]


@pytest.mark.anyio
async def test_failed_subscription_raises_helix_error(tmp_path) -> None:
    tokens = FakeTokenService(_valid_token())
    helix = RecordingHelix([httpx.Response(409, json={"message": "conflict"})])

    with pytest.raises(HelixAPIError) as excinfo:
        await _client(tmp_path, tokens, helix).create_eventsub_subscription(
            subscription_type="channel.follow",
            version="2",
            condition={"broadcaster_user_id": "1234"},
            session_id="session",
        )
    assert excinfo.value.status_code == 409

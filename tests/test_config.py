from dataclasses import fields

from aiortc import RTCBundlePolicy

from rtc_handlers.config import HandlerSettings


def test_defaults():
    settings = HandlerSettings()

    assert settings.turn_servers == []
    assert settings.transport_timeout == 30.0
    assert settings.to_rtc_configuration().bundlePolicy == RTCBundlePolicy.MAX_BUNDLE


def test_from_env(monkeypatch):
    monkeypatch.setenv("RTC_HANDLERS_TURN_URL", "turn:turn.example.com:3478")
    monkeypatch.setenv("RTC_HANDLERS_TURN_USERNAME", "alice")
    monkeypatch.setenv("RTC_HANDLERS_TURN_CREDENTIAL", "secret")
    monkeypatch.setenv("RTC_HANDLERS_TRANSPORT_TIMEOUT", "2.5")

    settings = HandlerSettings.from_env()

    assert settings.transport_timeout == 2.5
    [server] = settings.turn_servers
    assert server.urls == "turn:turn.example.com:3478"
    assert server.username == "alice"
    assert server.credential == "secret"
    assert settings.to_rtc_configuration().iceServers == [server]


def test_from_env_without_variables(monkeypatch):
    for name in (
        "RTC_HANDLERS_TURN_URL",
        "RTC_HANDLERS_TURN_USERNAME",
        "RTC_HANDLERS_TURN_CREDENTIAL",
        "RTC_HANDLERS_TRANSPORT_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = HandlerSettings.from_env()

    assert settings == HandlerSettings()


def test_from_env_disables_timeout(monkeypatch):
    monkeypatch.setenv("RTC_HANDLERS_TRANSPORT_TIMEOUT", "none")

    assert HandlerSettings.from_env().transport_timeout is None


def test_settings_fields():
    assert [f.name for f in fields(HandlerSettings)] == [
        "turn_servers",
        "bundle_policy",
        "transport_timeout",
        "sdp_username",
    ]

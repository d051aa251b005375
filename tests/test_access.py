import pytest

from clock_bot.access import is_privileged, require_privileged
from clock_bot.config import load_config
from clock_bot.errors import NotAuthorized


@pytest.fixture
def config(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.setenv("GUILD_ID", "42")
    monkeypatch.setenv("PRIVILEGED_USER_IDS", "7")
    monkeypatch.delenv("PRIVILEGED_ROLES", raising=False)
    monkeypatch.delenv("GITHUB_REPO", raising=False)
    return load_config()


def test_allow_list_by_id_or_role(config) -> None:
    assert is_privileged("7", [], config)
    assert is_privileged("8", ["Member", "Manager"], config)
    assert not is_privileged("8", ["Member"], config)


def test_require_privileged_raises(config) -> None:
    with pytest.raises(NotAuthorized):
        require_privileged("8", [], config)

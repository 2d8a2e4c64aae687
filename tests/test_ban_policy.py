import pytest

from flight_elo.utils.ban_policy import should_user_be_banned


@pytest.mark.parametrize("kills, team_kills, banned", [
    (0, 2, False),
    (4, 3, True),
    (5, 3, False),
    (9, 4, True),
    (10, 2, False),
    (10, 3, True),
    (100, 20, False),
    (100, 21, True),
])
def test_team_kill_thresholds(make_user, kills, team_kills, banned):
    user = make_user("u", kills=kills, team_kills=team_kills)
    assert should_user_be_banned(user) is banned

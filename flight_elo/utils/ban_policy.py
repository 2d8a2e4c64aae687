from flight_elo.constants import BanConstants
from flight_elo.data_models.user_state import UserState
from flight_elo.utils.logger import setup_logger

logger = setup_logger(__name__)


def should_user_be_banned(user: UserState) -> bool:
    """
    Team-kill ban rule, evaluated after every team kill.

    Pilots with few kills get a small absolute tolerance; everyone else is
    judged on their team-kill to kill ratio.
    """
    for kills_below, allowed_team_kills in BanConstants.LOW_KILL_TOLERANCES:
        if user.kills < kills_below:
            return user.team_kills > allowed_team_kills

    ratio = user.team_kills / user.kills
    if ratio > BanConstants.TEAM_KILL_RATIO:
        logger.info(f"User {user.id} has a team kill ratio of {ratio:.2f} and should be banned")
        return True
    return False

"""
Mood classifier for moodreel.
- Static mapping from a mood tag to an ordered list of TMDB genre ids.
- Ids mix movie-only and TV-only genres so both catalogs get coverage.
- Time-of-day genre suggestions for the idle discovery screen.

Movie genres: Action(28), Adventure(12), Animation(16), Comedy(35), Crime(80),
Documentary(99), Drama(18), Family(10751), Fantasy(14), History(36), Horror(27),
Music(10402), Mystery(9648), Romance(10749), Sci-Fi(878), Thriller(53), War(10752)
TV genres: Action & Adventure(10759), Kids(10762), Reality(10764),
Sci-Fi & Fantasy(10765), Soap(10766)
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from moodreel.errors import UnknownMoodError
from moodreel.utils.timezone import get_user_hour


class Mood(str, Enum):
    HAPPY = "happy"
    MELANCHOLIC = "melancholic"
    EXCITED = "excited"
    RELAXED = "relaxed"
    ROMANTIC = "romantic"
    TENSE = "tense"
    THOUGHTFUL = "thoughtful"
    PLAYFUL = "playful"


MOOD_GENRES: Dict[Mood, Tuple[int, ...]] = {
    # Comedy, Family, Animation
    Mood.HAPPY: (35, 10751, 16),
    # Drama, Documentary
    Mood.MELANCHOLIC: (18, 99),
    # Action, Thriller, Adventure, Sci-Fi + TV Action & Adventure, Sci-Fi & Fantasy
    Mood.EXCITED: (28, 53, 12, 878, 10759, 10765),
    # Documentary, Animation, Romance, Comedy + TV Reality, Soap
    Mood.RELAXED: (99, 16, 10749, 35, 10764, 10766),
    # Romance, Drama, Comedy + TV Soap
    Mood.ROMANTIC: (10749, 18, 35, 10766),
    # Thriller, Horror, Mystery, Crime
    Mood.TENSE: (53, 27, 9648, 80),
    # Sci-Fi, Drama, Mystery, Documentary + TV Sci-Fi & Fantasy
    Mood.THOUGHTFUL: (878, 18, 9648, 99, 10765),
    # Comedy, Animation, Adventure, Family + TV Kids
    Mood.PLAYFUL: (35, 16, 12, 10751, 10762),
}


def parse_mood(mood: Union[Mood, str]) -> Mood:
    if isinstance(mood, Mood):
        return mood
    try:
        return Mood(str(mood).strip().lower())
    except ValueError:
        raise UnknownMoodError(mood)


def genres_for(mood: Union[Mood, str]) -> List[int]:
    """Ordered genre ids for a mood. Raises UnknownMoodError outside the enumeration."""
    genres = MOOD_GENRES.get(parse_mood(mood))
    if not genres:
        raise UnknownMoodError(mood)
    return list(genres)


@dataclass(frozen=True)
class TimeBasedSuggestion:
    time_of_day: str
    suggested_genres: Tuple[int, ...]
    min_runtime: int
    max_runtime: int
    description: str


TIME_BASED_SUGGESTIONS: Dict[str, TimeBasedSuggestion] = {
    "morning": TimeBasedSuggestion("morning", (35, 99, 10751, 16), 60, 100,
                                   "Light and uplifting content to start your day"),
    "afternoon": TimeBasedSuggestion("afternoon", (28, 12, 878, 35), 90, 140,
                                     "Engaging content for midday entertainment"),
    "evening": TimeBasedSuggestion("evening", (18, 53, 80, 10749), 100, 180,
                                   "Deep and immersive stories for evening viewing"),
    "night": TimeBasedSuggestion("night", (27, 9648, 878, 53), 80, 120,
                                 "Thrilling content for late night watching"),
}


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def suggestion_for_time(hour: Optional[int] = None, user_timezone: str = "UTC") -> TimeBasedSuggestion:
    if hour is None:
        hour = get_user_hour(user_timezone)
    return TIME_BASED_SUGGESTIONS[time_of_day(hour)]

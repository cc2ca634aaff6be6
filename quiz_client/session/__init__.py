from quiz_client.session.answers import AnswerStore
from quiz_client.session.controller import AttemptController
from quiz_client.session.flags import FlagTracker

__all__ = ["AnswerStore", "AttemptController", "FlagTracker"]

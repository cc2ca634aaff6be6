from quiz_client.backend.client import LearningApiClient

__all__ = ["LearningApiClient"]

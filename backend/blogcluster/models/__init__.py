"""Models package."""

from .user import User
from .keywords_job import KeywordsJob, JobStatus
from .keyword_suggestion import KeywordSuggestion
from .research_article import ResearchArticle
from .research_topic_suggestion import ResearchTopicSuggestion, TOPIC_TIERS
from .post import Post, PostType, PostStatus, StageStatus
from .cluster import Cluster
from .usage import Usage
from .subscription import Subscription

__all__ = [
    "User",
    "KeywordsJob",
    "JobStatus",
    "KeywordSuggestion",
    "ResearchArticle",
    "ResearchTopicSuggestion",
    "TOPIC_TIERS",
    "Post",
    "PostType",
    "PostStatus",
    "StageStatus",
    "Cluster",
    "Usage",
    "Subscription",
]

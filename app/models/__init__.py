from app.models.account import Account, Organization
from app.models.content import AssessmentContentLink, AssessmentResult, Category, Content, ContentCategory, ContentTag, Tag
from app.models.interaction import ContentInteraction
from app.models.recommendation import Recommendation, RecommendationFeedback, UserInterest, UserPreference
from app.models.research import (
    Citation,
    ImpactMetricRecord,
    MetricValue,
    Publication,
    PublicationAuthor,
    PublicationIdentifier,
)
from app.models.similarity import ContentSimilarity

__all__ = [
    "Account",
    "AssessmentContentLink",
    "AssessmentResult",
    "Category",
    "Citation",
    "Content",
    "ContentCategory",
    "ContentInteraction",
    "ContentSimilarity",
    "ContentTag",
    "ImpactMetricRecord",
    "MetricValue",
    "Organization",
    "Publication",
    "PublicationAuthor",
    "PublicationIdentifier",
    "Recommendation",
    "RecommendationFeedback",
    "Tag",
    "UserInterest",
    "UserPreference",
]

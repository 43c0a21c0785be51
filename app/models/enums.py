from __future__ import annotations

from enum import Enum


class InteractionType(str, Enum):
    VIEW = "VIEW"
    READ = "READ"
    DOWNLOAD = "DOWNLOAD"
    SHARE = "SHARE"
    PRINT = "PRINT"
    RATE = "RATE"
    COMMENT = "COMMENT"
    BOOKMARK = "BOOKMARK"


class SimilarityType(str, Enum):
    CONTENT_BASED = "CONTENT_BASED"
    COLLABORATIVE = "COLLABORATIVE"
    SEMANTIC = "SEMANTIC"
    KEYWORD = "KEYWORD"
    TAG_BASED = "TAG_BASED"


class RecommendationReason(str, Enum):
    SIMILAR_CONTENT = "SIMILAR_CONTENT"
    USER_INTEREST = "USER_INTEREST"
    POPULAR = "POPULAR"
    TRENDING = "TRENDING"
    ASSESSMENT_BASED = "ASSESSMENT_BASED"
    COLLEAGUE_USED = "COLLEAGUE_USED"


class RecommendationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLICKED = "CLICKED"
    DISMISSED = "DISMISSED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not RecommendationStatus.ACTIVE


class InterestSource(str, Enum):
    EXPLICIT = "EXPLICIT"
    INFERRED = "INFERRED"
    ASSESSMENT = "ASSESSMENT"
    BROWSING_HISTORY = "BROWSING_HISTORY"


class EntityType(str, Enum):
    RESEARCHER = "researcher"
    PUBLICATION = "publication"
    JOURNAL = "journal"
    INSTITUTION = "institution"
    DEPARTMENT = "department"
    RESEARCH_GROUP = "research_group"


class MetricType(str, Enum):
    H_INDEX = "h_index"
    I10_INDEX = "i10_index"
    G_INDEX = "g_index"
    M_INDEX = "m_index"
    IMPACT_FACTOR = "impact_factor"
    EIGENFACTOR = "eigenfactor"
    SNIP = "snip"
    SJR = "sjr"
    ALTMETRIC_SCORE = "altmetric_score"
    MENDELEY_READERS = "mendeley_readers"
    TWITTER_MENTIONS = "twitter_mentions"
    NEWS_MENTIONS = "news_mentions"
    POLICY_MENTIONS = "policy_mentions"
    WIKIPEDIA_CITATIONS = "wikipedia_citations"
    BLOG_MENTIONS = "blog_mentions"
    DOWNLOADS = "downloads"
    VIEWS = "views"
    UNIQUE_VISITORS = "unique_visitors"
    PUBLICATION_COUNT = "publication_count"
    CITATION_COUNT = "citation_count"
    FIELD_WEIGHTED_CITATION_IMPACT = "field_weighted_citation_impact"
    PERCENTILE_RANK = "percentile_rank"
    COLLABORATION_INDEX = "collaboration_index"
    INTERNATIONAL_COLLABORATION_RATIO = "international_collaboration_ratio"
    CUSTOM = "custom"


class MetricSource(str, Enum):
    INTERNAL = "internal"
    WEB_OF_SCIENCE = "web_of_science"
    SCOPUS = "scopus"
    GOOGLE_SCHOLAR = "google_scholar"
    CROSSREF = "crossref"
    DIMENSIONS = "dimensions"
    SEMANTIC_SCHOLAR = "semantic_scholar"
    CUSTOM = "custom"


class MetricTimePeriod(str, Enum):
    ALL_TIME = "all_time"
    FIVE_YEARS = "five_years"
    TWO_YEARS = "two_years"
    ONE_YEAR = "one_year"
    CUSTOM = "custom"


class ResearchField(str, Enum):
    EDUCATION = "education"
    PSYCHOLOGY = "psychology"
    COGNITIVE_SCIENCE = "cognitive_science"
    NEUROSCIENCE = "neuroscience"
    COMPUTER_SCIENCE = "computer_science"
    DATA_SCIENCE = "data_science"
    SOCIAL_SCIENCES = "social_sciences"
    HUMANITIES = "humanities"
    MEDICINE = "medicine"
    NATURAL_SCIENCES = "natural_sciences"
    ENGINEERING = "engineering"
    MATHEMATICS = "mathematics"
    OTHER = "other"


class CitationType(str, Enum):
    IN_TEXT = "in_text"
    BIBLIOGRAPHY = "bibliography"
    FOOTNOTE = "footnote"
    ENDNOTE = "endnote"
    DATA_CITATION = "data_citation"
    CODE_CITATION = "code_citation"
    METHODOLOGY_CITATION = "methodology_citation"
    SELF_CITATION = "self_citation"
    REVIEW_CITATION = "review_citation"


class ContributionType(str, Enum):
    FIRST_AUTHOR = "first_author"
    CORRESPONDING_AUTHOR = "corresponding_author"
    CO_AUTHOR = "co_author"
    SUPERVISOR = "supervisor"
    CONTRIBUTOR = "contributor"
    EDITOR = "editor"
    REVIEWER = "reviewer"

"""Document store collection names and document id templates"""

SNAPSHOTS_COLLECTION = "pulseSnapshots"
SIGNALS_COLLECTION = "signals"
BRIEFS_COLLECTION = "briefs"
ARTICLES_COLLECTION = "articles"

# Upper bound for a single "read many by key" call against the store
READ_BATCH_LIMIT = 30

# Field projections for minimal reads
BRIEF_TOPIC_FIELDS = ("topics", "sourceArticleIds", "sourcesUsed")
BRIEF_CONTEXT_FIELDS = ("executiveSummary", "topics", "sourcesUsed")
BRIEF_DRILLDOWN_FIELDS = ("topics", "sourceArticleIds")
ARTICLE_DRIVER_FIELDS = ("title", "sourceName", "url", "publishedAt")


def snapshot_doc_id(window_days: int) -> str:
    """
    Document id for the single snapshot slot of a window size

    Returns:
        String like '7'
    """
    return str(int(window_days))


def signals_doc_id(date_key: str, window_days: int) -> str:
    """
    Document id for a cached signal comparison

    Returns:
        String like '2025-03-14_w7'
    """
    return f"{date_key}_w{int(window_days)}"


def watchlist_collection(uid: str) -> str:
    """
    Collection path holding one user's pinned topics

    Returns:
        String like 'users/UID/watchlist'
    """
    return f"users/{uid}/watchlist"

"""
Engine callback bodies in the shapes the automation engine actually sends.
"""

JOB_ID = "kw_test_0001"

SUGGESTIONS_BATCH = [
    {
        "keyword": "  Best Trail   Running Shoes ",
        "score": 0.91,
        "newsUrls": [
            "https://www.runnersworld.com/gear/a1",
            "https://www.runnersworld.com/gear/a1",
            "https://example.com/trail-guide",
        ],
        "newsMeta": [
            {"title": "Trail shoes tested", "summary": "We ran 500 miles.", "sourceName": "Runner's World"},
            {"title": "duplicate entry"},
            {"title": "Trail guide", "description": "Everything about trails."},
        ],
    },
    {
        "keyword": "waterproof running shoes",
        "score": "0.75",
        "sourceUrl": "https://example.com/waterproof",
        "newsUrls": "https://example.com/w1, https://example.com/w2",
        "newsMeta": {
            "https://example.com/w2": {"title": "Second", "summary": "Keyed by url"},
        },
    },
    {"keyword": "BEST TRAIL RUNNING SHOES", "score": 0.1},
    {"keyword": "   ", "score": 1},
    {"score": 0.3},
]

ARTICLES_BATCH = [
    {
        "id": "art-2",
        "url": "https://www.example.com/second",
        "title": "Second ranked",
        "source_name": "unknown_source",
        "rank": 2,
        "published_time": "2025-09-01T10:00:00Z",
    },
    {
        "id": "art-1",
        "url": "https://news.test/first",
        "title": "First ranked",
        "sourceName": "News Test",
        "rank": 1,
        "snippet": "Top story snippet",
    },
    {
        "url": "https://blog.test/unranked-new",
        "title": "Unranked newer",
        "publishedTime": "2025-09-10T08:00:00+02:00",
    },
    {
        "url": "https://blog.test/unranked-old",
        "title": "Unranked older",
        "published_time": "Mon, 01 Sep 2025 06:00:00 GMT",
    },
    {"url": "https://news.test/first", "title": "Duplicate url"},
    {"title": "No url at all"},
]

TOPICS_BATCH = [
    {"label": "Trail Shoes", "tier": "TOP"},
    {"label": "trail shoes", "tier": "top"},
    {"label": "Trail Shoes", "tier": "all"},
    {"label": "Carbon plates", "tier": "rising"},
    {"label": "Zero drop", "tier": "all"},
    {"label": "Hot takes", "tier": "hot"},
    {"label": "", "tier": "top"},
]


def flat_callback(job_id=JOB_ID, **fields):
    body = {"jobId": job_id, "userId": "user_a", "topic": "running shoes"}
    body.update(fields)
    return body


def keyword_records(count, prefix="keyword"):
    return [{"keyword": f"{prefix} {i}", "score": i / 10} for i in range(count)]


ENVELOPE_CALLBACK = {
    "uiPayload": {"headline": "Inline preview", "cards": [1, 2, 3]},
    "dbPayload": {
        "requestId": JOB_ID,
        "clerkId": "user_a",
        "topic": "running shoes",
        "location": {"country": "us", "state": "ca"},
        "keywords": [{"keyword": "Running Shoes", "score": 0.5}],
    },
}
